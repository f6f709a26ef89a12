# coding: utf-8
"""@brief Module implementing the bootloader serial port capabilities using pyserial
"""
import serial

from domain.ext_adapters_interface.serial_port_interface import SerialPortInterface
from domain.tisbl.sbl_config import SblConfig

class PySerialPort(SerialPortInterface):
    """@brief Concrete implementation of SerialPortInterface wrapping a pyserial Serial instance"""
    def __init__(self, serial_port: serial.Serial):
        """@brief Constructor
        @param serial_port An open pyserial port
        """
        self.serial_port = serial_port

    @property
    def timeout(self) -> float:
        return self.serial_port.timeout

    @timeout.setter
    def timeout(self, value: float):
        self.serial_port.timeout = value

    def read(self, size: int = 1) -> bytes:
        return self.serial_port.read(size)

    def write(self, data: bytes) -> int:
        return self.serial_port.write(data)

    def flush(self):
        self.serial_port.flush()

    def reset_input_buffer(self):
        self.serial_port.reset_input_buffer()

    def set_dtr(self, level: bool):
        self.serial_port.dtr = level

    def set_rts(self, level: bool):
        self.serial_port.rts = level

    def close(self):
        self.serial_port.close()

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()


def open_serial_port(port_name: str, config: SblConfig) -> PySerialPort:
    """@brief Open a serial port with the link settings of a bootloader configuration
    @param port_name The device path or name of the port (eg: '/dev/ttyUSB0' or 'COM3')
    @param config The link settings
    @return The open port, to be used as a context manager so that it is closed at the end
    """
    serial_port = serial.Serial(port=port_name,
                                baudrate=config.baudrate,
                                bytesize=config.bytesize,
                                parity=config.parity,
                                stopbits=config.stopbits,
                                rtscts=config.rtscts,
                                timeout=config.read_timeout)
    return PySerialPort(serial_port)
