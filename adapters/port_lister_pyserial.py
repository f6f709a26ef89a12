# coding: utf-8
"""@brief Module enumerating serial ports using pyserial
"""
from typing import List, Optional

from serial.tools import list_ports

from domain.ports import PortInfo, PortUsbInfo

def _parse_interface_number(location: Optional[str]) -> Optional[int]:
    """@brief Extract the USB interface number from a pyserial location string, eg: '1-1.2:1.0' gives 0
    """
    if location is None or ':' not in location:
        return None
    try:
        return int(location.rsplit('.', 1)[-1])
    except ValueError:
        return None

def to_port_info(list_port_info) -> PortInfo:
    """@brief Convert a pyserial ListPortInfo into a PortInfo
    """
    usb_info = None
    if list_port_info.vid is not None:
        usb_info = PortUsbInfo(num_if=_parse_interface_number(list_port_info.location),
                               vid=list_port_info.vid,
                               pid=list_port_info.pid,
                               serial=list_port_info.serial_number,
                               manufacturer=list_port_info.manufacturer,
                               product=list_port_info.product,
                               interface=list_port_info.interface)
    return PortInfo(port=list_port_info.device, name=list_port_info.description, usb_info=usb_info)

def list_serial_ports(usb_only: bool = False) -> List[PortInfo]:
    """@brief Get the serial ports available on this host
    @param usb_only Only return USB ports
    @return The ports, sorted by device name
    """
    ports = [to_port_info(p) for p in sorted(list_ports.comports(), key=lambda p: p.device)]
    if usb_only:
        ports = [p for p in ports if p.is_usb()]
    return ports
