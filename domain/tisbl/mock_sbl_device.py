# coding: utf-8
"""@brief Module implementing a fake TI serial bootloader, reachable through an in-memory serial port
"""
import binascii
from typing import Dict, List, Optional, Tuple

from domain.ext_adapters_interface.serial_port_interface import SerialPortInterface
from domain.tisbl.sbl_family import (Family, CAP_BANK_ERASE, CAP_CRC32_READ_REPEAT, CAP_DOWNLOAD_CRC, CAP_ERASE,
                                     CAP_MULTI_WORD_MEMORY_READ, CAP_RUN, CAP_SECTOR_ERASE, CAP_SET_CCFG, CAP_SET_XOSC)
import domain.tisbl.sbl_comm as comm
from domain.tisbl.sbl_status import (COMMAND_RET_SUCCESS, COMMAND_RET_UNKNOWN_CMD, COMMAND_RET_INVALID_CMD,
                                     COMMAND_RET_INVALID_ADR)

def encode_flash_size_register(family: Family, flash_size: int) -> int:
    """@brief Get the value of the flash size register of a target with flash_size bytes of flash
    """
    if family.supports_multi_word_memory_read():    # CC26xx: number of sectors
        return flash_size // family.sector_size()
    diecfg0_codes = { 0x10000: 0, 0x20000: 1, 0x40000: 2, 0x60000: 3, 0x80000: 4 }
    return diecfg0_codes[flash_size] << 4


class MockSblDevice(SerialPortInterface):
    """@brief Concrete implementation of SerialPortInterface emulating a target running the TI serial bootloader, for unit test purposes

    Everything written by the host is parsed as it would be by the target, and the answers are queued for read()
    """
    def __init__(self, family: Family, flash_size: Optional[int] = None, synchronized: bool = True, chip_id: int = 0xb964b964):
        """@brief Constructor
        @param family The chip family to emulate
        @param flash_size The installed flash size (defaults to the largest flash of the family)
        @param synchronized Is the autobaud already done? If not, all bytes are ignored until 0x55 0x55 is received
        @param chip_id The value returned to COMMAND_GET_CHIP_ID
        """
        self.family = family
        self.flash_size = flash_size if flash_size is not None else family.traits.max_flash_size
        self.flash_base = family.flash_base()
        self.flash = bytearray(b'\xff' * self.flash_size)
        self.registers: Dict[int, int] = { family.traits.flash_size_register: encode_flash_size_register(family, self.flash_size) }
        self.synchronized = synchronized
        self.chip_id = chip_id
        self.status = COMMAND_RET_SUCCESS
        self._timeout = None
        self.rx = bytearray()   # Bytes written by the host, not yet parsed
        self.tx = bytearray()   # Bytes to be read by the host
        self.written = bytearray()  # All bytes ever written by the host
        self.received_packets: List[bytes] = []    # Payloads of all well-formed packets, including the ones we NACKed
        self.commands: List[int] = []  # Opcodes of all packets that were ACKed
        self.sent_chunks: List[bytes] = [] # Content of accepted COMMAND_SEND_DATA packets
        self.erased_sectors: List[int] = []
        self.erased_ranges: List[Tuple[int, int]] = []
        self.bank_erase_count = 0
        self.ccfg_fields: Dict[int, int] = {}
        self.run_address = None
        self.xosc_enabled = False
        self.host_acks: List[bool] = []
        self.control_lines: List[Tuple[str, bool]] = []
        self.download_address = None
        self.download_remaining = 0
        self.download_expected_crc = None
        self.nack_count = 0 # Number of next well-formed packets to NACK
        self.fail_commands: Dict[int, int] = {}  # Opcode => status to report instead of running the command
        self.leading_garbage = b''  # Bytes to insert before the next ACK/NACK
        self.corrupt_next_response = False
        self.mute = False   # Never answer anything

    @property
    def timeout(self) -> float:
        return self._timeout

    @timeout.setter
    def timeout(self, value: float):
        self._timeout = value

    def read(self, size: int = 1) -> bytes:
        data = bytes(self.tx[:size])
        del self.tx[:size]
        return data

    def write(self, data: bytes) -> int:
        self.written += data
        self.rx += data
        self._parse_rx()
        return len(data)

    def flush(self):
        pass

    def reset_input_buffer(self):
        self.tx.clear()

    def set_dtr(self, level: bool):
        self.control_lines.append(('DTR', level))

    def set_rts(self, level: bool):
        self.control_lines.append(('RTS', level))

    def read_flash(self, address: int, size: int) -> bytes:
        offset = address - self.flash_base
        return bytes(self.flash[offset:offset + size])

    def write_flash(self, address: int, content: bytes):
        offset = address - self.flash_base
        self.flash[offset:offset + len(content)] = content

    def _in_flash(self, address: int, size: int) -> bool:
        return size > 0 and address >= self.flash_base and address + size <= self.flash_base + self.flash_size

    def _answer_ack(self, ack: bool):
        if self.mute:
            return
        self.tx += self.leading_garbage
        self.leading_garbage = b''
        self.tx += bytes([0x00, comm.ACK if ack else comm.NACK])

    def _answer_packet(self, data: bytes):
        if self.mute:
            return
        checksum = comm.get_8bit_arithmetic_checksum(data)
        if self.corrupt_next_response:
            checksum = (checksum + 1) & 0xff
            self.corrupt_next_response = False
        self.tx += bytes([len(data) + 2, checksum]) + data

    def _parse_rx(self):
        if not self.synchronized:
            autobaud_index = self.rx.find(comm.SblProtocol.AUTOBAUD)
            if autobaud_index < 0:
                del self.rx[:-1]    # Keep the last byte, it may be the first half of the autobaud sequence
                return
            del self.rx[:autobaud_index + 2]
            self.synchronized = True
            self._answer_ack(True)
        while len(self.rx) > 0:
            if self.rx[0] == 0x00:  # Acknowledge from the host, for a response packet we sent
                if len(self.rx) < 2:
                    return
                self.host_acks.append(self.rx[1] == comm.ACK)
                del self.rx[:2]
                continue
            length = self.rx[0]
            if length < 3:  # Not a valid packet header, skip it
                del self.rx[:1]
                continue
            if len(self.rx) < length:
                return
            packet = bytes(self.rx[:length])
            del self.rx[:length]
            payload = packet[2:]
            if comm.get_8bit_arithmetic_checksum(payload) != packet[1]:
                self._answer_ack(False)
                continue
            self.received_packets.append(payload)
            if self.nack_count > 0:
                self.nack_count -= 1
                self._answer_ack(False)
                continue
            self._handle_command(payload[0], payload[1:])

    def _handle_command(self, opcode: int, args: bytes):
        if opcode in self.fail_commands:
            if opcode in (comm.CMD_MEMORY_READ, comm.CMD_CRC32):   # Arguments are checked before the ACK
                self._reject(self.fail_commands[opcode])
            else:
                self._accept(opcode, self.fail_commands[opcode])
            return
        handlers = {
            comm.CMD_PING: self._on_ping,
            comm.CMD_DOWNLOAD: self._on_download,
            comm.CMD_DOWNLOAD_CRC: self._on_download_crc,
            comm.CMD_GET_STATUS: self._on_get_status,
            comm.CMD_SEND_DATA: self._on_send_data,
            comm.CMD_RESET: self._on_reset,
            comm.CMD_ERASE: self._on_erase,
            comm.CMD_CRC32: self._on_crc32,
            comm.CMD_GET_CHIP_ID: self._on_get_chip_id,
            comm.CMD_SET_XOSC: self._on_set_xosc,
            comm.CMD_MEMORY_READ: self._on_memory_read,
            comm.CMD_BANK_ERASE: self._on_bank_erase,
            comm.CMD_SET_CCFG: self._on_set_ccfg,
            comm.CMD_RUN: self._on_run,
        }
        handler = handlers.get(opcode)
        if handler is None:
            self.commands.append(opcode)
            self._answer_ack(True)
            self.status = COMMAND_RET_UNKNOWN_CMD
            return
        handler(opcode, args)

    def _accept(self, opcode: int, status: int = COMMAND_RET_SUCCESS):
        self.commands.append(opcode)
        self._answer_ack(True)
        self.status = status

    def _reject(self, status: int):
        self._answer_ack(False)
        self.status = status

    @staticmethod
    def _u32(args: bytes, index: int) -> int:
        return int.from_bytes(args[4 * index:4 * index + 4], byteorder='big')

    def _on_ping(self, opcode, args):
        self._accept(opcode)

    def _on_get_status(self, opcode, args):
        self.commands.append(opcode)
        self._answer_ack(True)
        self._answer_packet(bytes([self.status]))

    def _on_get_chip_id(self, opcode, args):
        self._accept(opcode)
        self._answer_packet(self.chip_id.to_bytes(4, byteorder='big'))

    def _start_download(self, opcode, address: int, size: int, crc: Optional[int]):
        if not self._in_flash(address, size):
            self.download_remaining = 0
            self._accept(opcode, COMMAND_RET_INVALID_ADR)
            return
        self.download_address = address
        self.download_remaining = size
        self.download_expected_crc = crc
        self._accept(opcode)

    def _on_download(self, opcode, args):
        if len(args) != 8:
            self._accept(opcode, COMMAND_RET_INVALID_CMD)
            return
        self._start_download(opcode, self._u32(args, 0), self._u32(args, 1), crc=None)

    def _on_download_crc(self, opcode, args):
        if not self.family.supports(CAP_DOWNLOAD_CRC) or len(args) != 12:
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)
            return
        self._start_download(opcode, self._u32(args, 0), self._u32(args, 1), crc=self._u32(args, 2))

    def _on_send_data(self, opcode, args):
        if self.download_remaining <= 0 or len(args) > self.download_remaining:
            self._accept(opcode, COMMAND_RET_INVALID_CMD)
            return
        self.write_flash(self.download_address, args)
        self.sent_chunks.append(bytes(args))
        self.download_address += len(args)
        self.download_remaining -= len(args)
        self._accept(opcode)

    def _on_reset(self, opcode, args):
        self._accept(opcode)
        self.synchronized = False
        self.download_remaining = 0

    def _on_erase(self, opcode, args):
        if self.family.supports(CAP_ERASE):
            (address, byte_count) = (self._u32(args, 0), self._u32(args, 1))
            if len(args) != 8 or not self._in_flash(address, byte_count):
                self._accept(opcode, COMMAND_RET_INVALID_ADR)
                return
            sector_size = self.family.sector_size()
            first_sector_offset = ((address - self.flash_base) // sector_size) * sector_size
            end_offset = address - self.flash_base + byte_count
            self.flash[first_sector_offset:end_offset] = b'\xff' * (end_offset - first_sector_offset)
            self.erased_ranges.append((address, byte_count))
            self._accept(opcode)
        elif self.family.supports(CAP_SECTOR_ERASE):
            address = self._u32(args, 0)
            sector_size = self.family.sector_size()
            if len(args) != 4 or not self._in_flash(address, sector_size) or (address - self.flash_base) % sector_size != 0:
                self._accept(opcode, COMMAND_RET_INVALID_ADR)
                return
            self.write_flash(address, b'\xff' * sector_size)
            self.erased_sectors.append(address)
            self._accept(opcode)
        else:
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)

    def _on_bank_erase(self, opcode, args):
        if not self.family.supports(CAP_BANK_ERASE):
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)
            return
        self.flash[:] = b'\xff' * self.flash_size
        self.bank_erase_count += 1
        self._accept(opcode)

    def _on_crc32(self, opcode, args):
        expected_args_len = 12 if self.family.supports(CAP_CRC32_READ_REPEAT) else 8
        (address, size) = (self._u32(args, 0), self._u32(args, 1))
        if len(args) != expected_args_len or not self._in_flash(address, size):
            self._reject(COMMAND_RET_INVALID_ADR)
            return
        self._accept(opcode)
        crc = binascii.crc32(self.read_flash(address, size)) & 0xffffffff
        self._answer_packet(crc.to_bytes(4, byteorder='little'))

    def _read_word(self, address: int) -> Optional[bytes]:
        if address in self.registers:
            return self.registers[address].to_bytes(4, byteorder='little')
        if self._in_flash(address, 4):
            return self.read_flash(address, 4)
        return None

    def _on_memory_read(self, opcode, args):
        address = self._u32(args, 0)
        if self.family.supports(CAP_MULTI_WORD_MEMORY_READ):
            if len(args) != 6 or args[4] != 1 or args[5] < 1 or args[5] > comm.MAX_MEMORY_READ_WORDS:
                self._reject(COMMAND_RET_INVALID_CMD)
                return
            word_count = args[5]
        else:
            if len(args) != 5 or args[4] != 4:
                self._reject(COMMAND_RET_INVALID_CMD)
                return
            word_count = 1
        words = [self._read_word(address + 4 * index) for index in range(word_count)]
        if address % 4 != 0 or None in words:
            self._reject(COMMAND_RET_INVALID_ADR)
            return
        self._accept(opcode)
        self._answer_packet(b''.join(words))

    def _on_set_xosc(self, opcode, args):
        if not self.family.supports(CAP_SET_XOSC):
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)
            return
        self.xosc_enabled = True
        self._accept(opcode)

    def _on_set_ccfg(self, opcode, args):
        if not self.family.supports(CAP_SET_CCFG) or len(args) != 8:
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)
            return
        self.ccfg_fields[self._u32(args, 0)] = self._u32(args, 1)
        self._accept(opcode)

    def _on_run(self, opcode, args):
        if not self.family.supports(CAP_RUN) or len(args) != 4:
            self._accept(opcode, COMMAND_RET_UNKNOWN_CMD)
            return
        self.run_address = self._u32(args, 0)
        self._accept(opcode)
