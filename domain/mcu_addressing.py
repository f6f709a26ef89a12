#!/usr/bin/env python3
# coding: utf-8
from typing import Tuple

"""@file MCU addressing-related representation
"""

class MCULogicalAddress(int):
    """@brief Class representing a logical address in the MCU linear address space (32-bit value for TI SBL targets)
    """

    def is_aligned_on_bytes_multiple(self, multiple: int) -> bool:
        """@brief Check if the specified address is a multiple of the provided argument
        @param multiple The multiple to check (eg: 4 means address is 32-bit aligned)
        @return True if the provided address is aligned
        """
        return int(self) % multiple == 0


class MCULogicalAddressRange:
    """@brief Class representing an address range in the MCU address space
    """
    def __init__(self, start_address: MCULogicalAddress, end_address: MCULogicalAddress):
        """@brief Constructor
        @param start_address The address of the first byte in the range
        @param end_address The address of the byte after the last byte included in the range (thus end_address is excluded)
        """
        assert(start_address < end_address)
        self.start_address = start_address
        self.end_address = end_address

    def __str__(self):
        return f'MCULogicalAddressRange[0x{self.start_address:08x},0x{self.end_address:08x}['

    def __repr__(self):
        return str(self)

    def __eq__(self, other):
        if not isinstance(other, MCULogicalAddressRange):
            return NotImplemented
        return self.start_address == other.start_address and self.end_address == other.end_address

    def get_size(self) -> int:
        """@brief Get the size in bytes of this range
        @return The number of bytes included in this range
        """
        return self.end_address - self.start_address

    def intersects(self, address_range) -> bool:
        """@brief Check if at least one byte of the specified address range is also within this address range
        @param address_range The address range to check
        @return True if both ranges overlap
        """
        return address_range.start_address < self.end_address and self.start_address < address_range.end_address

    @staticmethod
    def create_from_hex_segment(segment: Tuple[int, int]):
        """@brief Create a MCULogicalAddressRange instance from a tuple
        @param segment A tuple of (start_address, end_address) like what is returned by IntelHex.segments()
        @return The newly constructed MCULogicalAddressRange instance
        """
        (segment_start_addr, segment_end_addr) = segment
        return MCULogicalAddressRange(start_address=segment_start_addr, end_address=segment_end_addr)

    @staticmethod
    def create_from_size(start_address: int, size: int):
        """@brief Create a MCULogicalAddressRange instance from a start address and a byte count
        """
        return MCULogicalAddressRange(start_address=MCULogicalAddress(start_address), end_address=MCULogicalAddress(start_address + size))


class MCULocatedLogicalDataChunk:
    """@brief Class representing one MCU chunk of data located at a specific logical location in the MCU address space
    """
    def __init__(self, start_address, content: bytes):
        """@brief Constructor
        @param start_address The starting address for this chunk
        @param content A byte buffer containing the content of this chunk
        """
        if isinstance(start_address, MCULogicalAddress):
            start_address = start_address
        elif isinstance(start_address, int):
            start_address = MCULogicalAddress(start_address)
        else:
            raise TypeError('Unsupported argument type ' + str(type(start_address)))
        self.start_address: MCULogicalAddress = start_address
        self.size = len(content)
        self.content = content

    def get_content(self) -> bytes:
        """@brief Get the data chunk's raw bytes
        @return The data chunk bytes as a buffer
        """
        return self.content

    def __str__(self):
        return f'MCULocatedLogicalDataChunk({self.size} bytes @ 0x{self.start_address:08x})'

    def __repr__(self):
        return str(self)
