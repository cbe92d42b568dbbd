"""USB bulk transport for Qualcomm devices in EDL mode, using pyusb."""

from __future__ import annotations

import logging

import usb.core
import usb.util

from qcedl.core.errors import TransportConnectError, TransportIOError, TransportTimeoutError

LOGGER = logging.getLogger(__name__)

QUALCOMM_VID = 0x05C6
EDL_PID = 0x9008
VENDOR_CLASS = 0xFF
# bInterfaceProtocol values seen on EDL interfaces
EDL_PROTOCOLS = (0xFF, 0x10, 0x11)
WRITE_TIMEOUT_S = 5.0


def _is_edl_interface(interface: usb.core.Interface) -> bool:
    return (
        interface.bInterfaceClass == VENDOR_CLASS
        and interface.bInterfaceSubClass == VENDOR_CLASS
        and interface.bInterfaceProtocol in EDL_PROTOCOLS
    )


class USBTransport:
    """Bulk IN/OUT endpoints of the first EDL interface of a ``05c6:9008`` device.

    Usage::

        with USBTransport() as transport:
            result = run_session(transport)
    """

    def __init__(self, vendor_id: int = QUALCOMM_VID, product_id: int = EDL_PID) -> None:
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._device = None
        self._interface_number: int | None = None
        self._ep_in = None
        self._ep_out = None

    @property
    def connected(self) -> bool:
        return self._device is not None

    def open(self) -> None:
        try:
            dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        except usb.core.NoBackendError as exc:
            raise TransportConnectError(f"No libusb backend available: {exc}") from exc
        if dev is None:
            raise TransportConnectError(
                f"No EDL device found ({self._vendor_id:04x}:{self._product_id:04x}). "
                "Is it connected and in emergency download mode?"
            )

        try:
            self._claim(dev)
        except TransportConnectError:
            usb.util.dispose_resources(dev)
            raise
        LOGGER.info(
            "Opened EDL device %04x:%04x interface %d (in=0x%02x out=0x%02x)",
            self._vendor_id,
            self._product_id,
            self._interface_number,
            self._ep_in.bEndpointAddress,
            self._ep_out.bEndpointAddress,
        )

    def _claim(self, dev: usb.core.Device) -> None:
        try:
            config = dev.get_active_configuration()
        except usb.core.USBError:
            try:
                dev.set_configuration()
                config = dev.get_active_configuration()
            except usb.core.USBError as exc:
                raise TransportConnectError(f"Could not configure device: {exc}") from exc

        interface = usb.util.find_descriptor(config, custom_match=_is_edl_interface)
        if interface is None:
            raise TransportConnectError("Device exposes no EDL (vendor class) interface")
        number = interface.bInterfaceNumber

        try:
            if dev.is_kernel_driver_active(number):
                dev.detach_kernel_driver(number)
        except (NotImplementedError, usb.core.USBError) as exc:
            LOGGER.debug("Could not detach kernel driver: %s", exc)

        try:
            usb.util.claim_interface(dev, number)
        except usb.core.USBError as exc:
            raise TransportConnectError(f"Could not claim interface {number}: {exc}") from exc

        ep_out = usb.util.find_descriptor(
            interface,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress) == usb.util.ENDPOINT_OUT,
        )
        ep_in = usb.util.find_descriptor(
            interface,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress) == usb.util.ENDPOINT_IN,
        )
        if ep_in is None or ep_out is None:
            usb.util.release_interface(dev, number)
            raise TransportConnectError("EDL interface is missing a bulk endpoint")

        self._device = dev
        self._interface_number = number
        self._ep_in = ep_in
        self._ep_out = ep_out

    def close(self) -> None:
        if self._device is None:
            return
        try:
            usb.util.release_interface(self._device, self._interface_number)
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as exc:
            LOGGER.warning("Error closing device: %s", exc)
        finally:
            self._device = None
            self._ep_in = None
            self._ep_out = None
            LOGGER.info("Disconnected")

    def __enter__(self) -> USBTransport:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def send(self, data: bytes) -> None:
        if self._ep_out is None:
            raise TransportIOError("Not connected to device")
        try:
            written = self._ep_out.write(data, timeout=int(WRITE_TIMEOUT_S * 1000))
        except usb.core.USBTimeoutError as exc:
            raise TransportTimeoutError("Bulk OUT transfer timed out") from exc
        except usb.core.USBError as exc:
            raise TransportIOError(f"Bulk OUT transfer failed: {exc}") from exc
        if written != len(data):
            raise TransportIOError(f"Short bulk OUT transfer: {written} of {len(data)} bytes")

    def receive(self, max_len: int, timeout_s: float) -> bytes:
        if self._ep_in is None:
            raise TransportIOError("Not connected to device")
        try:
            data = self._ep_in.read(max_len, timeout=max(1, int(timeout_s * 1000)))
        except usb.core.USBTimeoutError as exc:
            raise TransportTimeoutError(f"No data within {timeout_s:.1f}s") from exc
        except usb.core.USBError as exc:
            raise TransportIOError(f"Bulk IN transfer failed: {exc}") from exc
        return bytes(data)
