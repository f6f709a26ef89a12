# coding: utf-8
"""@brief Module declaring the interface to which must comply all concrete implementations of firmware image containers
"""
import abc
from typing import List

from domain.mcu_addressing import MCULocatedLogicalDataChunk, MCULogicalAddressRange

class FirmwareImage(metaclass=abc.ABCMeta):
    """@brief Interface to which must comply all concrete implementations of firmware images (Intel Hex or raw binary files)"""

    @abc.abstractmethod
    def __init__(self):
        """@brief Construct an empty firmware image
        """
        raise NotImplementedError

    @abc.abstractmethod
    def get_segments(self) -> List[MCULogicalAddressRange]:
        """@brief Get a list of distinct segments contained in the image"""
        raise NotImplementedError

    @abc.abstractmethod
    def get_data_chunk_for_range(self, address_range: MCULogicalAddressRange) -> MCULocatedLogicalDataChunk:
        """@brief Get data contained in the image, for a given address range

        @note Holes in the image are filled with 0xff (erased flash value)
        @return The data read from the image"""
        raise NotImplementedError

    @abc.abstractmethod
    def put_data_chunk(self, content: MCULocatedLogicalDataChunk):
        """@brief Insert the provided content into the image

        @param content A data chunk with its logical location in flash

        @note This changes the in-memory representation, in order to be saved on disk, you should then invoke write_to()
        """
        raise NotImplementedError

    @abc.abstractmethod
    def write_to(self, file):
        """@brief Save the content of the current firmware representation to a file

        @param file A file-like object or a filename (a .bin filename produces a raw binary, anything else Intel Hex)
        """
        raise NotImplementedError

    @abc.abstractmethod
    def read_from(self, file, start_address: int = 0):
        """@brief Read the current firmware representation from a file

        @param file A filename (Intel Hex, or raw binary if its extension is .bin)
        @param start_address Where the first byte of a raw binary is located in the target address space (ignored for Intel Hex files)
        """
        raise NotImplementedError

    @classmethod
    def __subclasshook__(cls, subclass):
        if cls is not FirmwareImage:
            return NotImplemented
        return (
            hasattr(subclass, "get_segments")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.get_segments
            )
            and hasattr(subclass, "get_data_chunk_for_range")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.get_data_chunk_for_range
            )
            and hasattr(subclass, "put_data_chunk")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.put_data_chunk
            )
            and hasattr(subclass, "write_to")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.write_to
            )
            and hasattr(subclass, "read_from")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.read_from
            )
            or NotImplemented
        )
