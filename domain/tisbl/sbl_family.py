#!/usr/bin/env python3
# coding: utf-8
"""@brief Chip families supported by the TI serial bootloader, and everything that differs between them

All family-dependent behaviour is a lookup in the FamilyTraits record carried by each Family member, the command layer
never tests a family by name
"""
from enum import Enum
from typing import Callable, FrozenSet, Optional

from domain.mcu_addressing import MCULogicalAddress, MCULogicalAddressRange
from domain.tisbl.sbl_errors import InvalidAddress, UnsupportedOperation

CAP_RUN = 'run'
CAP_ERASE = 'erase'
CAP_SECTOR_ERASE = 'sector_erase'
CAP_BANK_ERASE = 'bank_erase'
CAP_SET_CCFG = 'set_ccfg'
CAP_SET_XOSC = 'set_xosc'
CAP_DOWNLOAD_CRC = 'download_crc'
CAP_MULTI_WORD_MEMORY_READ = 'multi_word_memory_read'
CAP_CRC32_READ_REPEAT = 'crc32_read_repeat'

def _decode_cc2538_diecfg0(traits, register_value: int) -> int:
    """@brief Decode FLASH_CTRL.DIECFG0 into a flash size in bytes (bits 4..6)
    @note All invalid values are interpreted as 64KB
    """
    flash_sizes = {
        0: 0x10000,
        1: 0x20000,
        2: 0x40000,
        3: 0x60000,
        4: 0x80000,
    }
    return flash_sizes.get((register_value >> 4) & 0x07, 0x10000)

def _decode_cc26xx_flash_size(traits, register_value: int) -> int:
    """@brief Decode FLASH.FLASH_SIZE (number of sectors in the low byte) into a flash size in bytes
    """
    return (register_value & 0xff) * traits.sector_size


class FamilyTraits:
    """@brief Constant data describing one chip family (no runtime state)
    """
    def __init__(self, name: str,
                       flash_base: int,
                       sector_size: int,
                       max_flash_size: int,
                       ccfg_size: int,
                       capabilities: FrozenSet[str],
                       flash_size_register: int,
                       flash_size_decoder: Callable[['FamilyTraits', int], int],
                       ieee_primary_address: int,
                       ieee_secondary_offset_from_end: int,
                       ieee_words_swapped: bool):
        """@brief Constructor
        @param name The family name, as used on the command line
        @param flash_base The address of the first flash byte
        @param sector_size The erase granularity in bytes (also the page size)
        @param max_flash_size The largest flash size that exists in this family, used to bound addresses when the actual size is unknown
        @param ccfg_size The size of the configuration area (CCA on CC2538, CCFG on CC26xx) located at the very end of flash
        @param capabilities The optional bootloader commands this family implements
        @param flash_size_register The address of the register holding the installed flash size
        @param flash_size_decoder A function converting the flash_size_register value into a size in bytes
        @param ieee_primary_address The address of the factory-programmed IEEE 802.15.4 address
        @param ieee_secondary_offset_from_end The distance between the end of flash and the user-programmed IEEE address in the configuration area
        @param ieee_words_swapped The two 32-bit words of the IEEE address are stored high word first
        """
        self.name = name
        self.flash_base = flash_base
        self.sector_size = sector_size
        self.max_flash_size = max_flash_size
        self.ccfg_size = ccfg_size
        self.capabilities = capabilities
        self.flash_size_register = flash_size_register
        self.flash_size_decoder = flash_size_decoder
        self.ieee_primary_address = ieee_primary_address
        self.ieee_secondary_offset_from_end = ieee_secondary_offset_from_end
        self.ieee_words_swapped = ieee_words_swapped

    def decode_flash_size(self, register_value: int) -> int:
        return self.flash_size_decoder(self, register_value)

    def __repr__(self):
        return f'FamilyTraits({self.name})'


class Family(Enum):
    """@brief The type of the bootloader (one member per supported silicon line)
    """
    CC2538 = FamilyTraits(name='cc2538',
                          flash_base=0x00200000,
                          sector_size=2048,
                          max_flash_size=0x80000,
                          ccfg_size=44,
                          capabilities=frozenset([CAP_RUN, CAP_ERASE, CAP_SET_XOSC]),
                          flash_size_register=0x400D3014,    # FLASH_CTRL.DIECFG0
                          flash_size_decoder=_decode_cc2538_diecfg0,
                          ieee_primary_address=0x00280028,
                          ieee_secondary_offset_from_end=0x34,
                          ieee_words_swapped=True)
    CC26X0 = FamilyTraits(name='cc26x0',
                          flash_base=0x00000000,
                          sector_size=4096,
                          max_flash_size=0x20000,
                          ccfg_size=88,
                          capabilities=frozenset([CAP_SECTOR_ERASE, CAP_BANK_ERASE, CAP_SET_CCFG, CAP_MULTI_WORD_MEMORY_READ, CAP_CRC32_READ_REPEAT]),
                          flash_size_register=0x4003002C,    # FLASH.FLASH_SIZE
                          flash_size_decoder=_decode_cc26xx_flash_size,
                          ieee_primary_address=0x500012F0,   # FCFG1.MAC_15_4_0
                          ieee_secondary_offset_from_end=88 - 0x20,
                          ieee_words_swapped=False)
    CC26X2 = FamilyTraits(name='cc26x2',
                          flash_base=0x00000000,
                          sector_size=8192,
                          max_flash_size=0x58000,
                          ccfg_size=88,
                          capabilities=frozenset([CAP_SECTOR_ERASE, CAP_BANK_ERASE, CAP_SET_CCFG, CAP_DOWNLOAD_CRC, CAP_MULTI_WORD_MEMORY_READ,
                                                   CAP_CRC32_READ_REPEAT]),
                          flash_size_register=0x4003002C,    # FLASH.FLASH_SIZE
                          flash_size_decoder=_decode_cc26xx_flash_size,
                          ieee_primary_address=0x500012F0,   # FCFG1.MAC_15_4_0
                          ieee_secondary_offset_from_end=88 - 0x20,
                          ieee_words_swapped=False)

    @property
    def traits(self) -> FamilyTraits:
        return self.value

    @staticmethod
    def from_name(name: str) -> 'Family':
        """@brief Get a family from its command line name (case insensitive)
        """
        for family in Family:
            if family.traits.name == name.lower():
                return family
        raise ValueError(f"Invalid family '{name}', must be one of: " + ', '.join(f.traits.name for f in Family))

    def __str__(self) -> str:
        return self.traits.name.upper()

    def supports(self, capability: str) -> bool:
        return capability in self.traits.capabilities

    def require(self, capability: str, command_name: Optional[str] = None):
        """@brief Make sure this family implements an optional bootloader command
        @warning Raises UnsupportedOperation otherwise
        """
        if not self.supports(capability):
            raise UnsupportedOperation(f'{command_name or capability} is not supported on {self}')

    def supports_run(self) -> bool:
        return self.supports(CAP_RUN)

    def supports_erase(self) -> bool:
        return self.supports(CAP_ERASE)

    def supports_sector_erase(self) -> bool:
        return self.supports(CAP_SECTOR_ERASE)

    def supports_bank_erase(self) -> bool:
        return self.supports(CAP_BANK_ERASE)

    def supports_set_ccfg(self) -> bool:
        return self.supports(CAP_SET_CCFG)

    def supports_set_xosc(self) -> bool:
        return self.supports(CAP_SET_XOSC)

    def supports_download_crc(self) -> bool:
        return self.supports(CAP_DOWNLOAD_CRC)

    def supports_multi_word_memory_read(self) -> bool:
        return self.supports(CAP_MULTI_WORD_MEMORY_READ)

    def flash_base(self) -> int:
        return self.traits.flash_base

    def sector_size(self) -> int:
        return self.traits.sector_size

    def ccfg_size(self) -> int:
        return self.traits.ccfg_size

    def address_to_page(self, address: int) -> int:
        """@brief Convert a flash address to the flash page (sector index) it belongs to
        """
        if address < self.flash_base():
            raise InvalidAddress(f'Address 0x{address:08x} is below flash base 0x{self.flash_base():08x}')
        return (address - self.flash_base()) // self.sector_size()

    def page_to_address(self, page: int) -> MCULogicalAddress:
        """@brief Get the start address of a flash page
        """
        return MCULogicalAddress(self.flash_base() + page * self.sector_size())

    def flash_range(self, flash_size: Optional[int] = None) -> MCULogicalAddressRange:
        """@brief Get the flash address window
        @param flash_size The installed flash size, if known (the family's largest flash size is used otherwise)
        """
        if flash_size is None:
            flash_size = self.traits.max_flash_size
        return MCULogicalAddressRange.create_from_size(self.flash_base(), flash_size)

    def ccfg_range(self, flash_size: Optional[int] = None) -> MCULogicalAddressRange:
        """@brief Get the configuration area (CCA/CCFG) window, located in the last bytes of flash
        """
        flash_end = self.flash_range(flash_size).end_address
        return MCULogicalAddressRange(start_address=MCULogicalAddress(flash_end - self.ccfg_size()), end_address=flash_end)

    def check_flash_range(self, address: int, size: int, flash_size: Optional[int] = None):
        """@brief Make sure [address, address+size[ lies within the flash window
        @warning Raises InvalidAddress otherwise
        """
        window = self.flash_range(flash_size)
        if size < 0 or address < window.start_address or address + size > window.end_address:
            raise InvalidAddress(f'Range [0x{address:08x}, 0x{address + size:08x}[ is outside flash window {window} on {self}')
