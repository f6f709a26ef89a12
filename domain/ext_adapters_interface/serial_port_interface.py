# coding: utf-8
"""@brief Module declaring the narrow serial port capabilities the bootloader protocol relies on
"""
import abc

class SerialPortInterface(metaclass=abc.ABCMeta):
    """@brief Interface to which must comply all concrete implementations of serial ports used to talk to a bootloader

    @note Only byte I/O with timeout and the DTR/RTS control lines are needed, opening and enumerating ports is left to adapters
    """

    @property
    @abc.abstractmethod
    def timeout(self) -> float:
        """@brief The read timeout (in s) applied to read()"""
        raise NotImplementedError

    @timeout.setter
    @abc.abstractmethod
    def timeout(self, value: float):
        raise NotImplementedError

    @abc.abstractmethod
    def read(self, size: int = 1) -> bytes:
        """@brief Read up to size bytes, blocking at most timeout seconds

        @return The bytes read (may be shorter than size, or empty, if the timeout expired)
        """
        raise NotImplementedError

    @abc.abstractmethod
    def write(self, data: bytes) -> int:
        """@brief Write a buffer to the port

        @return The number of bytes written
        """
        raise NotImplementedError

    @abc.abstractmethod
    def flush(self):
        """@brief Wait until all written data has been sent"""
        raise NotImplementedError

    @abc.abstractmethod
    def reset_input_buffer(self):
        """@brief Discard all bytes already received but not read yet"""
        raise NotImplementedError

    @abc.abstractmethod
    def set_dtr(self, level: bool):
        """@brief Set the DTR control line"""
        raise NotImplementedError

    @abc.abstractmethod
    def set_rts(self, level: bool):
        """@brief Set the RTS control line"""
        raise NotImplementedError

    @classmethod
    def __subclasshook__(cls, subclass):
        if cls is not SerialPortInterface:
            return NotImplemented
        return (
            hasattr(subclass, "read")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.read
            )
            and hasattr(subclass, "write")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.write
            )
            and hasattr(subclass, "flush")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.flush
            )
            and hasattr(subclass, "reset_input_buffer")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.reset_input_buffer
            )
            and hasattr(subclass, "set_dtr")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.set_dtr
            )
            and hasattr(subclass, "set_rts")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.set_rts
            )
            or NotImplemented
        )
