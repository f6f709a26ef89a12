# coding: utf-8
"""@brief Metadata describing serial ports available on the host
"""
from typing import Optional

class PortUsbInfo:
    """@brief USB descriptor information of a USB-to-serial port
    """
    def __init__(self, num_if: Optional[int] = None,
                       vid: Optional[int] = None,
                       pid: Optional[int] = None,
                       serial: Optional[str] = None,
                       manufacturer: Optional[str] = None,
                       product: Optional[str] = None,
                       interface: Optional[str] = None):
        """@brief Constructor
        @param num_if The USB interface number of the port on its device
        @param vid The USB vendor ID
        @param pid The USB product ID
        @param serial The USB serial number string
        @param manufacturer The USB manufacturer string
        @param product The USB product string
        @param interface The USB interface string
        """
        self.num_if = num_if
        self.vid = vid
        self.pid = pid
        self.serial = serial
        self.manufacturer = manufacturer
        self.product = product
        self.interface = interface

    def __str__(self):
        vid_pid = f'{self.vid:04x}:{self.pid:04x}' if self.vid is not None and self.pid is not None else '????:????'
        description = ' '.join(s for s in (self.manufacturer, self.product) if s)
        if self.serial:
            description += f' (serial {self.serial})'
        if self.num_if is not None:
            description += f' interface #{self.num_if}'
        return f'USB {vid_pid} {description}'.rstrip()


class PortInfo:
    """@brief A serial port, as enumerated on the host
    """
    def __init__(self, port: str, name: Optional[str] = None, usb_info: Optional[PortUsbInfo] = None):
        """@brief Constructor
        @param port The device path or name to open (eg: '/dev/ttyACM0' or 'COM3')
        @param name A human-readable description of the port
        @param usb_info USB descriptor information, if the port is a USB one
        """
        self.port = port
        self.name = name
        self.usb_info = usb_info

    def is_usb(self) -> bool:
        return self.usb_info is not None

    def __str__(self):
        result = self.port
        if self.name:
            result += f': {self.name}'
        if self.usb_info is not None:
            result += f' [{self.usb_info}]'
        return result

    def __repr__(self):
        return f'PortInfo({self.port!r})'
