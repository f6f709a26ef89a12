# coding: utf-8
"""@brief Module implementing firmware images (Intel Hex or raw binary files) using python intelhex
"""
import os
from io import IOBase
from typing import List

from intelhex import IntelHex

from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage
from domain.mcu_addressing import MCULocatedLogicalDataChunk, MCULogicalAddressRange

class PythonIntelHexFirmwareImage(FirmwareImage):
    """@brief Concrete implementation of FirmwareImage using python intelhex"""

    def __init__(self):
        """@brief Construct an empty firmware image
        """
        self.intel_hex = IntelHex()
        self.intel_hex.padding = 0xff

    @staticmethod
    def is_binary_filename(filename: str) -> bool:
        return os.path.splitext(filename)[1].lower() == '.bin'

    def get_segments(self) -> List[MCULogicalAddressRange]:
        return [MCULogicalAddressRange.create_from_hex_segment(s) for s in self.intel_hex.segments()]

    def get_data_chunk_for_range(self, address_range: MCULogicalAddressRange) -> MCULocatedLogicalDataChunk:
        data_chunk = self.intel_hex.tobinstr(start=address_range.start_address, end=address_range.end_address-1) # IntelHex.tobinstr()'s end address is included, while MCUAddressRange.end_address is excluded, this is why we rewind 1 byte for the end address
        return MCULocatedLogicalDataChunk(start_address=address_range.start_address, content=data_chunk)

    def put_data_chunk(self, content: MCULocatedLogicalDataChunk):
        self.intel_hex.puts(content.start_address, content.get_content())

    def write_to(self, file):
        if not isinstance(file, IOBase):
            if self.is_binary_filename(file):
                with open(file=file, mode="wb") as f:
                    self.intel_hex.tobinfile(f)
            else:
                with open(file=file, mode="wt") as f:
                    self.write_to(f)
        else:
            self.intel_hex.write_hex_file(file)

    def read_from(self, file, start_address: int = 0):
        if not isinstance(file, str):
            raise NotImplementedError    # Reading from file-like object is not implemented yet
        if self.is_binary_filename(file):
            self.intel_hex.loadbin(file, offset=start_address)
        else:
            self.intel_hex.loadhex(file)
