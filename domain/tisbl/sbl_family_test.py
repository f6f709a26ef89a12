# coding: utf-8
import pytest

from domain.mcu_addressing import MCULogicalAddressRange
from domain.tisbl.sbl_errors import InvalidAddress, UnsupportedOperation
from domain.tisbl.sbl_family import Family, CAP_DOWNLOAD_CRC, CAP_RUN

def test_address_to_page():
    # When converting addresses to pages
    # Then the page is the offset from the flash base divided by the sector size
    assert Family.CC2538.address_to_page(0x00200000) == 0
    assert Family.CC2538.address_to_page(0x002007ff) == 0
    assert Family.CC2538.address_to_page(0x00200800) == 1
    assert Family.CC26X0.address_to_page(0x0) == 0
    assert Family.CC26X0.address_to_page(0x1fff) == 1
    assert Family.CC26X2.address_to_page(0x56000) == 43

def test_address_to_page_below_flash_base():
    # When converting an address lower than the CC2538 flash base
    # Then InvalidAddress should be raised
    with pytest.raises(InvalidAddress):
        Family.CC2538.address_to_page(0x001fffff)

def test_page_to_address_round_trip():
    for family in Family:
        for page in (0, 1, 17):
            assert family.address_to_page(family.page_to_address(page)) == page

def test_capabilities():
    assert Family.CC2538.supports_run()
    assert Family.CC2538.supports_erase()
    assert Family.CC2538.supports_set_xosc()
    assert not Family.CC2538.supports_sector_erase()
    assert not Family.CC2538.supports_multi_word_memory_read()
    for family in (Family.CC26X0, Family.CC26X2):
        assert not family.supports_run()
        assert not family.supports_erase()
        assert family.supports_sector_erase()
        assert family.supports_bank_erase()
        assert family.supports_set_ccfg()
        assert family.supports_multi_word_memory_read()
    assert not Family.CC26X0.supports_download_crc()
    assert Family.CC26X2.supports_download_crc()

def test_require_unsupported_capability():
    # When requiring a capability the family does not have
    # Then UnsupportedOperation should be raised
    with pytest.raises(UnsupportedOperation):
        Family.CC26X2.require(CAP_RUN, 'COMMAND_RUN')
    with pytest.raises(UnsupportedOperation):
        Family.CC26X0.require(CAP_DOWNLOAD_CRC)
    Family.CC26X2.require(CAP_DOWNLOAD_CRC)

def test_from_name():
    assert Family.from_name('cc2538') is Family.CC2538
    assert Family.from_name('CC26X0') is Family.CC26X0
    assert Family.from_name('cc26x2') is Family.CC26X2
    assert str(Family.CC26X2) == 'CC26X2'
    with pytest.raises(ValueError):
        Family.from_name('cc1310')

def test_flash_and_ccfg_ranges():
    assert Family.CC2538.flash_range(0x40000) == MCULogicalAddressRange(0x00200000, 0x00240000)
    assert Family.CC2538.ccfg_range(0x80000) == MCULogicalAddressRange(0x0027ffd4, 0x00280000)
    assert Family.CC26X0.flash_range() == MCULogicalAddressRange(0, 0x20000)
    assert Family.CC26X2.ccfg_range() == MCULogicalAddressRange(0x58000 - 88, 0x58000)

def test_check_flash_range():
    Family.CC26X0.check_flash_range(0, 0x20000)
    # When checking a range overrunning the flash
    # Then InvalidAddress should be raised
    with pytest.raises(InvalidAddress):
        Family.CC26X0.check_flash_range(0x1f000, 0x2000)
    with pytest.raises(InvalidAddress):
        Family.CC26X0.check_flash_range(0x10000, 0x1000, flash_size=0x10000)
    with pytest.raises(InvalidAddress):
        Family.CC2538.check_flash_range(0, 4)

def test_decode_flash_size():
    assert Family.CC2538.traits.decode_flash_size(0x20) == 0x40000
    assert Family.CC2538.traits.decode_flash_size(0x40) == 0x80000
    assert Family.CC2538.traits.decode_flash_size(0x70) == 0x10000    # Invalid values mean 64KB
    assert Family.CC26X0.traits.decode_flash_size(0x20) == 0x20000
    assert Family.CC26X2.traits.decode_flash_size(0x2c) == 0x58000
