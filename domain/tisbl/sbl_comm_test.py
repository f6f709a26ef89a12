# coding: utf-8
import binascii
import pytest

import domain.tisbl.sbl_comm as comm
from domain.tisbl.sbl_comm import Device, SblDeviceSession, SblProtocol
from domain.tisbl.sbl_config import SblConfig
from domain.tisbl.sbl_errors import (CommandFailed, EncodingError, InvalidAddress, ProtocolError, SyncError, TransportError,
                                     UnsupportedOperation)
from domain.tisbl.sbl_family import Family
from domain.tisbl.sbl_status import COMMAND_RET_FLASH_FAIL, COMMAND_RET_INVALID_ADR, COMMAND_RET_SUCCESS
from domain.tisbl.mock_sbl_device import MockSblDevice

fast_config = SblConfig(ack_timeout=0.05, sync_timeout=0.3, read_timeout=0.01)

def opcodes_received(mock_device: MockSblDevice):
    return [payload[0] for payload in mock_device.received_packets]

def test_frame_checksum():
    assert SblProtocol.frame(b'\x20') == b'\x03\x20\x20'
    download_payload = bytes([comm.CMD_DOWNLOAD, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x02, 0x00])
    assert SblProtocol.frame(download_payload) == bytes([11, 0x23]) + download_payload
    assert SblProtocol.get_checksum(b'\xff\xff\x03') == 0x01

def test_send_packet_rejects_invalid_sizes():
    mock_device = MockSblDevice(Family.CC26X2)
    protocol = SblProtocol(mock_device)

    # When sending a payload larger than the largest packet, or an empty one
    with pytest.raises(EncodingError):
        protocol.send_packet(b'\x99' + b'\x00' * comm.MAX_PAYLOAD_SIZE)
    with pytest.raises(EncodingError):
        protocol.send_packet(b'')

    # Then nothing should have been written to the port
    assert mock_device.written == b''

def test_send_packet_largest_payload():
    mock_device = MockSblDevice(Family.CC26X2)
    protocol = SblProtocol(mock_device)

    # When sending a payload of the maximum size
    protocol.send_packet(b'\x99' + b'\x55' * (comm.MAX_PAYLOAD_SIZE - 1))

    # Then the target should have received and acknowledged it
    assert len(mock_device.written) == comm.MAX_PACKET_SIZE
    assert protocol.last_ack == True

def test_send_packet_retransmits_on_nack():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.nack_count = 2
    protocol = SblProtocol(mock_device, SblConfig(max_retries=3))

    # When the target answers NACK twice, then ACK
    protocol.send_packet(bytes([comm.CMD_PING]))

    # Then the same packet should have been sent exactly 3 times (2 retransmissions)
    assert mock_device.received_packets == [bytes([comm.CMD_PING])] * 3
    assert mock_device.commands == [comm.CMD_PING]

def test_send_packet_gives_up_after_retry_budget():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.nack_count = 100
    protocol = SblProtocol(mock_device, SblConfig(max_retries=3))

    # When the target always answers NACK
    with pytest.raises(TransportError):
        protocol.send_packet(bytes([comm.CMD_PING]))

    # Then we should have tried once, then retried 3 times
    assert len(mock_device.received_packets) == 4

def test_send_packet_without_retries():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.nack_count = 1
    protocol = SblProtocol(mock_device)

    with pytest.raises(TransportError):
        protocol.send_packet(bytes([comm.CMD_PING]), max_retries=0)

    assert len(mock_device.received_packets) == 1

def test_ack_timeout():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.mute = True
    protocol = SblProtocol(mock_device, fast_config)

    # When the target never answers
    # Then TransportError should be raised
    with pytest.raises(TransportError):
        protocol.send_packet(bytes([comm.CMD_PING]))

def test_leading_garbage_is_discarded():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.leading_garbage = b'\x12\x34\x00'
    device = Device(mock_device, Family.CC26X0)

    assert device.ping() == True
    assert device.last_ack == True

def test_sync_already_synchronized():
    mock_device = MockSblDevice(Family.CC26X2, synchronized=True)
    device = Device(mock_device, Family.CC26X2, fast_config)

    # When synchronizing with a target that already went through auto baud
    device.sync()

    # Then only the probe packet should have been sent
    assert mock_device.written == b'\x03\x00\x00'

def test_sync_performs_autobaud():
    mock_device = MockSblDevice(Family.CC26X2, synchronized=False)
    device = Device(mock_device, Family.CC26X2, fast_config)

    # When synchronizing with a target waiting for the auto baud sequence
    device.sync()

    # Then the auto baud sequence should have been sent and the target should be ready for commands
    assert mock_device.synchronized
    assert b'\x55\x55' in mock_device.written
    assert device.ping() == True

def test_sync_timeout():
    mock_device = MockSblDevice(Family.CC26X2, synchronized=False)
    mock_device.mute = True
    device = Device(mock_device, Family.CC26X2, fast_config)

    # When the target never answers the auto baud sequence
    # Then SyncError should be raised
    with pytest.raises(SyncError):
        device.sync()

def test_ping_is_idempotent():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)
    flash_before = bytes(mock_device.flash)

    # When pinging several times
    results = [device.ping() for _ in range(5)]

    # Then each ping should succeed without any change on the target
    assert results == [True] * 5
    assert mock_device.commands == [comm.CMD_PING] * 5
    assert bytes(mock_device.flash) == flash_before

def test_get_chip_id():
    mock_device = MockSblDevice(Family.CC2538, chip_id=0xb9640000)
    device = Device(mock_device, Family.CC2538)

    assert device.get_chip_id() == 0xb9640000
    assert mock_device.host_acks == [True]  # Response packet acknowledged
    assert opcodes_received(mock_device) == [comm.CMD_GET_CHIP_ID]  # No status poll

def test_response_checksum_error():
    mock_device = MockSblDevice(Family.CC2538)
    mock_device.corrupt_next_response = True
    device = Device(mock_device, Family.CC2538)

    # When the response packet has a wrong checksum
    # Then ProtocolError should be raised, after having answered NACK to the target
    with pytest.raises(ProtocolError):
        device.get_chip_id()
    assert mock_device.host_acks == [False]

def test_get_status():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    assert device.get_status() == COMMAND_RET_SUCCESS

def test_download_then_send_data():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    # When downloading 8 bytes at 0x1000
    device.download(0x1000, 8)
    device.send_data(b'\x01\x02\x03\x04')
    device.send_data(b'\x05\x06\x07\x08')

    # Then each command should have been followed by a status poll, and flash should be written
    assert opcodes_received(mock_device) == [comm.CMD_DOWNLOAD, comm.CMD_GET_STATUS,
                                             comm.CMD_SEND_DATA, comm.CMD_GET_STATUS,
                                             comm.CMD_SEND_DATA, comm.CMD_GET_STATUS]
    assert mock_device.received_packets[0] == bytes([comm.CMD_DOWNLOAD, 0x00, 0x00, 0x10, 0x00, 0x00, 0x00, 0x00, 0x08])
    assert mock_device.read_flash(0x1000, 8) == bytes(range(1, 9))

def test_send_data_unacknowledged_is_sent_once():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)
    device.download(0x1000, 4)
    mock_device.nack_count = 1

    # When sending a chunk without expecting an ACK, and the target answers NACK
    ack = device.send_data(b'\x01\x02\x03\x04', expect_ack=False)

    # Then the chunk should not be retransmitted, nor the status polled
    assert ack == False
    assert opcodes_received(mock_device) == [comm.CMD_DOWNLOAD, comm.CMD_GET_STATUS, comm.CMD_SEND_DATA]

def test_send_data_invalid_chunk_sizes():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    with pytest.raises(EncodingError):
        device.send_data(b'\x00' * (comm.MAX_BYTES_PER_TRANSFER + 1))
    with pytest.raises(EncodingError):
        device.send_data(b'')
    assert mock_device.written == b''

def test_command_failed_status():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.fail_commands[comm.CMD_ERASE] = COMMAND_RET_FLASH_FAIL
    device = Device(mock_device, Family.CC26X0)

    # When the target reports a failure status after a sector erase
    with pytest.raises(CommandFailed) as excinfo:
        device.sector_erase(0x1000)

    # Then CommandFailed should carry the status
    assert excinfo.value.status == COMMAND_RET_FLASH_FAIL
    assert 'COMMAND_RET_FLASH_FAIL' in str(excinfo.value)

def test_unsupported_operations_are_not_sent():
    cc26x2_mock = MockSblDevice(Family.CC26X2)
    cc26x2_device = Device(cc26x2_mock, Family.CC26X2)
    cc26x0_mock = MockSblDevice(Family.CC26X0)
    cc26x0_device = Device(cc26x0_mock, Family.CC26X0)
    cc2538_mock = MockSblDevice(Family.CC2538)
    cc2538_device = Device(cc2538_mock, Family.CC2538)

    # When invoking commands that the family does not implement
    # Then UnsupportedOperation should be raised
    with pytest.raises(UnsupportedOperation):
        cc26x2_device.run(0x0)
    with pytest.raises(UnsupportedOperation):
        cc26x2_device.erase(0x0, 0x1000)
    with pytest.raises(UnsupportedOperation):
        cc26x2_device.set_xosc()
    with pytest.raises(UnsupportedOperation):
        cc26x0_device.download_crc(0x0, 0x100, 0x12345678)
    with pytest.raises(UnsupportedOperation):
        cc2538_device.sector_erase(0x00200000)
    with pytest.raises(UnsupportedOperation):
        cc2538_device.bank_erase()
    with pytest.raises(UnsupportedOperation):
        cc2538_device.set_ccfg(0x1, 0x2)
    with pytest.raises(UnsupportedOperation):
        cc2538_device.read_memory(0x00200000, 2)

    # ...and nothing should have been sent to the targets
    assert cc26x2_mock.written == b''
    assert cc26x0_mock.written == b''
    assert cc2538_mock.written == b''

def test_invalid_addresses_are_not_sent():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    with pytest.raises(InvalidAddress):
        device.download(0x20000 - 4, 8)
    with pytest.raises(InvalidAddress):
        device.sector_erase(0x100)
    with pytest.raises(InvalidAddress):
        device.sector_erase(0x20000)
    with pytest.raises(InvalidAddress):
        device.memory_read_32(0x2)
    with pytest.raises(InvalidAddress):
        device.crc32(0x1ff00, 0x200)
    assert mock_device.written == b''

def test_download_is_checked_against_known_flash_size():
    mock_device = MockSblDevice(Family.CC26X2, flash_size=0x40000)
    device = Device(mock_device, Family.CC26X2, flash_size=0x40000)

    with pytest.raises(InvalidAddress):
        device.download(0x40000, 4)
    assert mock_device.written == b''

def test_memory_read_encodings():
    cc26x0_mock = MockSblDevice(Family.CC26X0)
    cc26x0_mock.write_flash(0x100, b'\x01\x02\x03\x04\x05\x06\x07\x08')
    cc26x0_device = Device(cc26x0_mock, Family.CC26X0)
    cc2538_mock = MockSblDevice(Family.CC2538)
    cc2538_mock.write_flash(0x00200100, b'\x78\x56\x34\x12')
    cc2538_device = Device(cc2538_mock, Family.CC2538)

    # When reading memory
    words = cc26x0_device.read_memory(0x100, 2)
    value = cc2538_device.memory_read_32(0x00200100)

    # Then CC26xx should use an access type and a count, CC2538 an access width
    assert words == b'\x01\x02\x03\x04\x05\x06\x07\x08'
    assert cc26x0_mock.received_packets[0] == bytes([comm.CMD_MEMORY_READ, 0x00, 0x00, 0x01, 0x00, 0x01, 0x02])
    assert value == 0x12345678
    assert cc2538_mock.received_packets[0] == bytes([comm.CMD_MEMORY_READ, 0x00, 0x20, 0x01, 0x00, 0x04])

def test_memory_read_rejected_is_not_retried():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    # When reading an address the target refuses
    with pytest.raises(CommandFailed) as excinfo:
        device.memory_read_32(0x40000000)

    # Then the NACK should not be retried, and the status should explain why
    assert excinfo.value.status == COMMAND_RET_INVALID_ADR
    assert opcodes_received(mock_device) == [comm.CMD_MEMORY_READ, comm.CMD_GET_STATUS]

def test_crc32():
    content = bytes(range(256)) * 4
    for family, expected_args_size in ((Family.CC26X0, 12), (Family.CC2538, 8)):
        mock_device = MockSblDevice(family)
        address = family.flash_base() + 0x800
        mock_device.write_flash(address, content)
        device = Device(mock_device, family)

        # When computing a CRC32 on the target
        crc = device.crc32(address, len(content))

        # Then it should match the CRC32 of the flash content, and CC26xx should have sent the read repeat count
        assert crc == binascii.crc32(content) & 0xffffffff
        assert len(mock_device.received_packets[0]) == 1 + expected_args_size

def test_download_crc():
    mock_device = MockSblDevice(Family.CC26X2)
    device = Device(mock_device, Family.CC26X2)

    device.download_crc(0x2000, 0x100, 0xdeadbeef)

    assert mock_device.received_packets[0] == bytes([comm.CMD_DOWNLOAD_CRC,
                                                     0x00, 0x00, 0x20, 0x00,
                                                     0x00, 0x00, 0x01, 0x00,
                                                     0xde, 0xad, 0xbe, 0xef])
    assert mock_device.download_expected_crc == 0xdeadbeef

def test_bank_erase():
    mock_device = MockSblDevice(Family.CC26X0)
    mock_device.write_flash(0x0, b'\x00' * 16)
    device = Device(mock_device, Family.CC26X0)

    device.bank_erase()

    assert mock_device.bank_erase_count == 1
    assert mock_device.read_flash(0x0, 16) == b'\xff' * 16

def test_cc2538_specific_commands():
    mock_device = MockSblDevice(Family.CC2538)
    device = Device(mock_device, Family.CC2538)

    device.set_xosc()
    device.erase(0x00200000, 0x1000)
    device.run(0x00200000)

    assert mock_device.xosc_enabled
    assert mock_device.erased_ranges == [(0x00200000, 0x1000)]
    assert mock_device.run_address == 0x00200000

def test_set_ccfg():
    mock_device = MockSblDevice(Family.CC26X2)
    device = Device(mock_device, Family.CC26X2)

    device.set_ccfg(0x1, 0xc5)

    assert mock_device.ccfg_fields == {0x1: 0xc5}
    assert mock_device.received_packets[0] == bytes([comm.CMD_SET_CCFG, 0, 0, 0, 1, 0, 0, 0, 0xc5])

def test_reset():
    mock_device = MockSblDevice(Family.CC26X0)
    device = Device(mock_device, Family.CC26X0)

    device.reset()

    assert not mock_device.synchronized

def test_invoke_bootloader_default_wiring():
    mock_device = MockSblDevice(Family.CC26X2)

    # When invoking the bootloader with DTR on the bootloader pin (active high) and RTS on !RESET
    comm.invoke_bootloader(mock_device)

    # Then the bootloader pin should be set while the reset is pulsed, then released
    assert mock_device.control_lines == [('DTR', False), ('RTS', False), ('RTS', True), ('RTS', False), ('DTR', True)]

def test_invoke_bootloader_inverted_active_low():
    mock_device = MockSblDevice(Family.CC26X2)

    comm.invoke_bootloader(mock_device, active_low=True, inverted=True)

    assert mock_device.control_lines == [('RTS', True), ('DTR', False), ('DTR', True), ('DTR', False), ('RTS', False)]

def test_device_session():
    mock_device = MockSblDevice(Family.CC26X2, synchronized=False)
    session = SblDeviceSession(mock_device, Family.CC26X2, config=fast_config, invoke_bootloader=True)

    # When opening a session that invokes the bootloader
    with session as device:
        # Then the control lines should have been toggled, and the target synchronized
        assert len(mock_device.control_lines) == 5
        assert mock_device.synchronized
        assert device is session.get_handler()
        assert device.family is Family.CC26X2
