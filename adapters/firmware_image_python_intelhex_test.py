# coding: utf-8
from adapters.firmware_image_python_intelhex import PythonIntelHexFirmwareImage
from domain.mcu_addressing import MCULocatedLogicalDataChunk, MCULogicalAddressRange

def test_holes_are_padded_with_erased_value():
    firmware = PythonIntelHexFirmwareImage()
    firmware.put_data_chunk(MCULocatedLogicalDataChunk(start_address=0x1000, content=b'\x01\x02'))
    firmware.put_data_chunk(MCULocatedLogicalDataChunk(start_address=0x1004, content=b'\x03'))

    assert firmware.get_segments() == [MCULogicalAddressRange(0x1000, 0x1002), MCULogicalAddressRange(0x1004, 0x1005)]
    assert firmware.get_data_chunk_for_range(MCULogicalAddressRange(0x1000, 0x1005)).get_content() == b'\x01\x02\xff\xff\x03'

def test_binary_file_is_located_at_start_address(tmp_path):
    bin_file = tmp_path / 'firmware.bin'
    bin_file.write_bytes(b'\xaa\xbb\xcc\xdd')

    firmware = PythonIntelHexFirmwareImage()
    firmware.read_from(str(bin_file), start_address=0x00200000)

    assert firmware.get_segments() == [MCULogicalAddressRange(0x00200000, 0x00200004)]

def test_hex_file_write_then_read(tmp_path):
    hex_file = str(tmp_path / 'dump.hex')
    firmware = PythonIntelHexFirmwareImage()
    firmware.put_data_chunk(MCULocatedLogicalDataChunk(start_address=0x1ffa8, content=bytes(range(88))))

    firmware.write_to(hex_file)
    reloaded = PythonIntelHexFirmwareImage()
    reloaded.read_from(hex_file, start_address=0x12345678)    # Ignored for Intel Hex files

    assert reloaded.get_segments() == [MCULogicalAddressRange(0x1ffa8, 0x20000)]
    assert reloaded.get_data_chunk_for_range(MCULogicalAddressRange(0x1ffa8, 0x20000)).get_content() == bytes(range(88))
