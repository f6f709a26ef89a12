#!/usr/bin/env python3
# coding: utf-8
"""@brief Packet transport and command encoders for the TI CC2538/CC26x0/CC26x2 ROM serial bootloader

A command exchange is:
* host sends [length][checksum][opcode][params...]
* target answers 0x00 followed by ACK (0xcc) or NACK (0x33)
* for commands answering with data, target then sends [length][checksum][data...] that the host acknowledges
* for commands defined as "fire, then poll status", host then sends COMMAND_GET_STATUS
"""

import abc
import time
from typing import Optional

from logging import getLogger

from domain.common import to_hex_str
from domain.mcu_addressing import MCULogicalAddress
from domain.ext_adapters_interface.serial_port_interface import SerialPortInterface
from domain.tisbl.sbl_config import SblConfig
from domain.tisbl.sbl_errors import CommandFailed, EncodingError, InvalidAddress, ProtocolError, SyncError, TransportError
from domain.tisbl.sbl_family import (Family, CAP_BANK_ERASE, CAP_CRC32_READ_REPEAT, CAP_DOWNLOAD_CRC, CAP_ERASE,
                                     CAP_MULTI_WORD_MEMORY_READ, CAP_RUN, CAP_SECTOR_ERASE, CAP_SET_CCFG, CAP_SET_XOSC)
from domain.tisbl.sbl_status import COMMAND_RET_SUCCESS, status_code_to_str

logger = getLogger(__name__)

ACK = 0xcc
NACK = 0x33

MAX_PACKET_SIZE = 255
MAX_PAYLOAD_SIZE = MAX_PACKET_SIZE - 2  # length and checksum bytes
MAX_BYTES_PER_TRANSFER = 252
MAX_MEMORY_READ_WORDS = 63

CMD_PING = 0x20
CMD_DOWNLOAD = 0x21
CMD_RUN = 0x22
CMD_GET_STATUS = 0x23
CMD_SEND_DATA = 0x24
CMD_RESET = 0x25
CMD_ERASE = 0x26    # Range erase on CC2538, sector erase on CC26xx
CMD_CRC32 = 0x27
CMD_GET_CHIP_ID = 0x28
CMD_SET_XOSC = 0x29
CMD_MEMORY_READ = 0x2a
CMD_BANK_ERASE = 0x2c
CMD_SET_CCFG = 0x2d
CMD_DOWNLOAD_CRC = 0x2f

def get_8bit_arithmetic_checksum(buffer) -> int:
    """@brief Computes a basic checksum (arithmetic byte sum limited to 8-bit results without carry) on a buffer
    @param buffer The byte buffer to process
    @return The resulting unsigned 8-bit checksum
    """
    checksum_result: int = 0
    for byte in buffer:
        checksum_result = (checksum_result + byte) & 0xff
    return checksum_result

def encode_u32(value: int) -> bytes:
    """@brief Encode a 32-bit command parameter (all bootloader parameters are big endian)
    """
    if value < 0 or value > 0xffffffff:
        raise EncodingError(f'Value 0x{value:x} does not fit in 32 bits')
    return value.to_bytes(4, byteorder='big')


class SblCommand(metaclass=abc.ABCMeta):
    """@brief Interface to which must comply all concrete implementations of bootloader command encoders/decoders
    A bootloader command contains
    * an 8-bit command ID (and its human-readable transcription)
    * arguments to this command
    get_arguments_payload() allows to retrieve the arguments only
    get_as_buffer() will return the packet payload (command ID followed by the arguments)
    """
    COMMAND_ID = None
    COMMAND_NAME = '(unknown)'
    POLL_STATUS = False # Should COMMAND_GET_STATUS be issued after the command to check its outcome?
    REJECTED_ON_NACK = False    # The target validates arguments before answering, a NACK is final and the reason is in the status

    def __init__(self, command_id: int, max_retries: Optional[int] = None):
        self.command_id = command_id
        self.max_retries = max_retries

    @abc.abstractmethod
    def get_arguments_payload(self) -> bytes:
        """@brief Get the arguments for this command
        @return The arguments formatted as a byte buffer
        """
        raise NotImplementedError

    def get_max_retries(self) -> Optional[int]:
        """@brief Get the number of retransmissions allowed on NACK
        @return The number of retries, or None to use the transport's default
        """
        return self.max_retries

    def get_expected_reply_sz(self) -> int:
        """@brief Get the size of the data packet returned by the target after the ACK
        @return The number of data bytes we are expecting (0 if the command answers with an ACK only)
        """
        return 0

    def parse_reply(self, reply_payload: Optional[bytes]):
        """@brief Parse the data packet returned by the target
        @param reply_payload The data returned by the target (None if get_expected_reply_sz() is 0)
        @return An object containing our interpretation of the reply_payload
        """
        return None

    def get_as_buffer(self) -> bytes:
        """@brief Represent this command as a binary buffer
        @return The packet payload to send to the remote target (includes command+arguments)
        """
        return bytes([self.command_id]) + bytes(self.get_arguments_payload())

    def __str__(self) -> str:
        """@brief Generic formatter of a command as a string"""
        return self.COMMAND_NAME


class CommandPing(SblCommand):
    COMMAND_ID = CMD_PING
    COMMAND_NAME = 'COMMAND_PING'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''


class CommandDownload(SblCommand):
    """@brief Prepare flash programming, declaring the size that the following COMMAND_SEND_DATA will carry in total"""
    COMMAND_ID = CMD_DOWNLOAD
    COMMAND_NAME = 'COMMAND_DOWNLOAD'
    POLL_STATUS = True

    def __init__(self, address: int, size: int, **kwargs):
        if size <= 0:
            raise EncodingError(f'Invalid download size {size}')
        self.address = MCULogicalAddress(address)
        self.size = size
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.address) + encode_u32(self.size)

    def __str__(self) -> str:
        return super().__str__() + f'({self.size} bytes at 0x{self.address:08x})'


class CommandRun(SblCommand):
    """@brief Jump to an address (the bootloader will not answer anything after the ACK)"""
    COMMAND_ID = CMD_RUN
    COMMAND_NAME = 'COMMAND_RUN'

    def __init__(self, address: int, **kwargs):
        self.address = MCULogicalAddress(address)
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.address)

    def __str__(self) -> str:
        return super().__str__() + f'(0x{self.address:08x})'


class CommandGetStatus(SblCommand):
    COMMAND_ID = CMD_GET_STATUS
    COMMAND_NAME = 'COMMAND_GET_STATUS'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''

    def get_expected_reply_sz(self) -> int:
        return 1

    def parse_reply(self, reply_payload):
        return reply_payload[0]


class CommandSendData(SblCommand):
    """@brief Carry one chunk of the data declared by a previous COMMAND_DOWNLOAD

    @note When the target answers NACK, its write pointer is not incremented, so the same chunk can be retransmitted
    """
    COMMAND_ID = CMD_SEND_DATA
    COMMAND_NAME = 'COMMAND_SEND_DATA'
    POLL_STATUS = True

    def __init__(self, chunk: bytes, **kwargs):
        if len(chunk) < 1 or len(chunk) > MAX_BYTES_PER_TRANSFER:
            raise EncodingError(f'Invalid chunk size {len(chunk)}, must be between 1 and {MAX_BYTES_PER_TRANSFER} bytes')
        self.chunk = bytes(chunk)
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return self.chunk

    def __str__(self) -> str:
        return super().__str__() + f'({len(self.chunk)} bytes)'


class CommandReset(SblCommand):
    COMMAND_ID = CMD_RESET
    COMMAND_NAME = 'COMMAND_RESET'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''


class CommandErase(SblCommand):
    """@brief CC2538 range erase (all pages overlapping the range are erased)"""
    COMMAND_ID = CMD_ERASE
    COMMAND_NAME = 'COMMAND_ERASE'
    POLL_STATUS = True

    def __init__(self, address: int, byte_count: int, **kwargs):
        if byte_count <= 0:
            raise EncodingError(f'Invalid erase size {byte_count}')
        self.address = MCULogicalAddress(address)
        self.byte_count = byte_count
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.address) + encode_u32(self.byte_count)

    def __str__(self) -> str:
        return super().__str__() + f'({self.byte_count} bytes at 0x{self.address:08x})'


class CommandSectorErase(SblCommand):
    """@brief CC26xx sector erase"""
    COMMAND_ID = CMD_ERASE
    COMMAND_NAME = 'COMMAND_SECTOR_ERASE'
    POLL_STATUS = True

    def __init__(self, address: int, **kwargs):
        self.address = MCULogicalAddress(address)
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.address)

    def __str__(self) -> str:
        return super().__str__() + f'(0x{self.address:08x})'


class CommandCrc32(SblCommand):
    """@brief Compute the CRC32 of a memory area on the target"""
    COMMAND_ID = CMD_CRC32
    COMMAND_NAME = 'COMMAND_CRC32'
    POLL_STATUS = True
    REJECTED_ON_NACK = True

    def __init__(self, address: int, size: int, with_read_repeat: bool = False, **kwargs):
        """@brief Constructor
        @param address The start address of the area
        @param size The number of bytes to compute the CRC on
        @param with_read_repeat Append the (always 0) read repeat count parameter expected by CC26xx bootloaders
        """
        if size <= 0:
            raise EncodingError(f'Invalid CRC32 size {size}')
        self.address = MCULogicalAddress(address)
        self.size = size
        self.with_read_repeat = with_read_repeat
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        payload = encode_u32(self.address) + encode_u32(self.size)
        if self.with_read_repeat:
            payload += encode_u32(0)
        return payload

    def get_expected_reply_sz(self) -> int:
        return 4

    def parse_reply(self, reply_payload):
        return int.from_bytes(reply_payload, byteorder='little')

    def __str__(self) -> str:
        return super().__str__() + f'({self.size} bytes at 0x{self.address:08x})'


class CommandGetChipId(SblCommand):
    COMMAND_ID = CMD_GET_CHIP_ID
    COMMAND_NAME = 'COMMAND_GET_CHIP_ID'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''

    def get_expected_reply_sz(self) -> int:
        return 4

    def parse_reply(self, reply_payload):
        return int.from_bytes(reply_payload, byteorder='big')


class CommandSetXosc(SblCommand):
    COMMAND_ID = CMD_SET_XOSC
    COMMAND_NAME = 'COMMAND_SET_XOSC'
    POLL_STATUS = True

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''


class CommandMemoryRead(SblCommand):
    """@brief Read 32-bit words from the target address space

    CC26xx bootloaders take an access type and a number of accesses (up to 63 words), CC2538 bootloaders take an access
    width and always return one single word
    """
    COMMAND_ID = CMD_MEMORY_READ
    COMMAND_NAME = 'COMMAND_MEMORY_READ'
    POLL_STATUS = True
    REJECTED_ON_NACK = True

    ACCESS_TYPE_32BIT = 1
    ACCESS_WIDTH_32BIT = 4

    def __init__(self, address: int, word_count: int = 1, counted_access: bool = True, **kwargs):
        """@brief Constructor
        @param address The 32-bit aligned address to read
        @param word_count The number of 32-bit words to read
        @param counted_access Use the CC26xx encoding (access type + number of accesses) instead of the CC2538 one (access width)
        """
        address = MCULogicalAddress(address)
        if not address.is_aligned_on_bytes_multiple(4):
            raise InvalidAddress(f'Memory read address 0x{address:08x} is not 32-bit aligned')
        if word_count < 1 or word_count > MAX_MEMORY_READ_WORDS:
            raise EncodingError(f'Invalid word count {word_count}, must be between 1 and {MAX_MEMORY_READ_WORDS}')
        if not counted_access and word_count != 1:
            raise EncodingError('Only one word can be read per command with this encoding')
        self.address = address
        self.word_count = word_count
        self.counted_access = counted_access
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        if self.counted_access:
            return encode_u32(self.address) + bytes([self.ACCESS_TYPE_32BIT, self.word_count])
        else:
            return encode_u32(self.address) + bytes([self.ACCESS_WIDTH_32BIT])

    def get_expected_reply_sz(self) -> int:
        return 4 * self.word_count

    def parse_reply(self, reply_payload):
        return bytes(reply_payload)

    def __str__(self) -> str:
        return super().__str__() + f'({self.word_count} word(s) at 0x{self.address:08x})'


class CommandBankErase(SblCommand):
    COMMAND_ID = CMD_BANK_ERASE
    COMMAND_NAME = 'COMMAND_BANK_ERASE'
    POLL_STATUS = True

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return b''


class CommandSetCcfg(SblCommand):
    """@brief Write one field of the CC26xx customer configuration area"""
    COMMAND_ID = CMD_SET_CCFG
    COMMAND_NAME = 'COMMAND_SET_CCFG'
    POLL_STATUS = True

    def __init__(self, field_id: int, value: int, **kwargs):
        self.field_id = field_id
        self.value = value
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.field_id) + encode_u32(self.value)

    def __str__(self) -> str:
        return super().__str__() + f'(field 0x{self.field_id:x} = 0x{self.value:08x})'


class CommandDownloadCrc(SblCommand):
    """@brief CC26x2 variant of COMMAND_DOWNLOAD, the target checks the received data against the provided CRC32"""
    COMMAND_ID = CMD_DOWNLOAD_CRC
    COMMAND_NAME = 'COMMAND_DOWNLOAD_CRC'
    POLL_STATUS = True

    def __init__(self, address: int, size: int, crc: int, **kwargs):
        if size <= 0:
            raise EncodingError(f'Invalid download size {size}')
        self.address = MCULogicalAddress(address)
        self.size = size
        self.crc = crc
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self) -> bytes:
        return encode_u32(self.address) + encode_u32(self.size) + encode_u32(self.crc)

    def __str__(self) -> str:
        return super().__str__() + f'({self.size} bytes at 0x{self.address:08x}, crc 0x{self.crc:08x})'


class SblProtocol:
    """@brief Class representing the packet transport towards the remote bootloader
    """
    AUTOBAUD = b'\x55\x55'

    def __init__(self, port: SerialPortInterface, config: Optional[SblConfig] = None):
        """@brief Constructor
        @param port The (already open) serial port we read/write data from/to
        @param config Timeouts and retry budget (defaults are used if None)
        """
        self.port = port
        self.config = config if config is not None else SblConfig()
        self.last_ack: Optional[bool] = None

    @staticmethod
    def get_checksum(buffer: bytes) -> int:
        return get_8bit_arithmetic_checksum(buffer)

    @staticmethod
    def frame(payload: bytes) -> bytes:
        """@brief Encapsulate a payload into a packet: [length][checksum][payload...]
        @param payload The opcode followed by the command parameters
        @return The bytes to send on the wire
        """
        if len(payload) < 1 or len(payload) > MAX_PAYLOAD_SIZE:
            raise EncodingError(f'Invalid payload size {len(payload)}, must be between 1 and {MAX_PAYLOAD_SIZE} bytes')
        return bytes([len(payload) + 2, SblProtocol.get_checksum(payload)]) + bytes(payload)

    def _write(self, buffer: bytes) -> None:
        logger.debug('Sending: ' + to_hex_str(buffer))
        try:
            self.port.write(buffer)
            self.port.flush()
        except OSError as e:
            raise TransportError(f'Failed writing to serial port: {e}') from e

    def _read(self, size: int) -> bytes:
        try:
            return self.port.read(size)
        except OSError as e:
            raise TransportError(f'Failed reading from serial port: {e}') from e

    def _read_exact(self, size: int, timeout: float) -> bytes:
        """@brief Read exactly size bytes, or raise TransportError after timeout seconds
        """
        self.port.timeout = self.config.read_timeout
        deadline = time.monotonic() + timeout
        buffer = b''
        while len(buffer) < size:
            buffer += self._read(size - len(buffer))
            if len(buffer) < size and time.monotonic() >= deadline:
                raise TransportError(f'Timeout while receiving response, got {len(buffer)}/{size} bytes')
        return buffer

    def read_ack(self, timeout: Optional[float] = None) -> bool:
        """@brief Wait for the target's flow control symbol (0x00 followed by ACK or NACK)
        @param timeout The time we accept to wait for the symbol (defaults to the configured ack_timeout)
        @return True on ACK, False on NACK

        @note Leading garbage bytes are discarded
        """
        if timeout is None:
            timeout = self.config.ack_timeout
        self.port.timeout = self.config.read_timeout
        deadline = time.monotonic() + timeout
        received = bytearray()
        while True:
            received += self._read(1)
            if len(received) >= 2 and received[-2] == 0x00 and received[-1] in (ACK, NACK):
                break
            if time.monotonic() >= deadline:
                if len(received) > 0:
                    logger.debug('Discarded bytes: ' + to_hex_str(received))
                raise TransportError('Timeout while waiting for ACK')
        if len(received) > 2:
            logger.warning(f'Discarded {len(received) - 2} leading garbage byte(s) before ACK')
        self.last_ack = (received[-1] == ACK)
        logger.debug('Got ' + ('ACK' if self.last_ack else 'NACK'))
        return self.last_ack

    def write_ack(self, ack: bool) -> None:
        """@brief Acknowledge (or reject) a data packet received from the target
        """
        self._write(bytes([0x00, ACK if ack else NACK]))

    def transmit(self, payload: bytes) -> bool:
        """@brief Send a packet once, without retrying on NACK
        @return True if the target answered ACK
        """
        self._write(self.frame(payload))
        return self.read_ack()

    def send_packet(self, payload: bytes, max_retries: Optional[int] = None) -> None:
        """@brief Send a packet and wait for an ACK, retransmitting the same packet on NACK
        @param payload The opcode followed by the command parameters
        @param max_retries The number of retransmissions allowed (0 means we will only try the first time, defaults to the configured budget)

        @warning Raises EncodingError (before anything is written) if the payload is empty or too large, and TransportError if
                 the retry budget is exhausted or no flow control symbol is received in time
        """
        packet = self.frame(payload)
        allowed_retries = self.config.max_retries if max_retries is None else max_retries
        attempt_number = 0
        while attempt_number <= allowed_retries:
            if attempt_number > 0:
                logger.warning(f'Got a NACK, re-sending packet (retry {attempt_number}/{allowed_retries})')
            self._write(packet)
            if self.read_ack():
                return
            attempt_number += 1
        raise TransportError(f'Aborting transmission of command 0x{payload[0]:02x} after {allowed_retries} retrie(s)')

    def read_packet(self, expected_size: int) -> bytes:
        """@brief Receive a data packet [length][checksum][data...] from the target, and acknowledge it
        @param expected_size The number of data bytes we are expecting
        @return The data bytes

        @note A packet with a wrong checksum is rejected with a NACK
        """
        (length, remote_checksum) = self._read_exact(2, timeout=self.config.ack_timeout)
        payload_size = length - 2
        if payload_size != expected_size:
            raise ProtocolError(f'Unexpected response size {payload_size}, expected {expected_size}')
        payload = self._read_exact(payload_size, timeout=self.config.ack_timeout)
        logger.debug('Response buffer: ' + to_hex_str(payload))
        expected_checksum = self.get_checksum(payload)
        if remote_checksum != expected_checksum:
            self.write_ack(False)
            raise ProtocolError(f'Got a wrong response checksum: 0x{remote_checksum:02x} (expected 0x{expected_checksum:02x})')
        self.write_ack(True)
        return payload

    def sync(self, timeout: Optional[float] = None) -> None:
        """@brief Synchronize with the bootloader (autobaud), unless it is already synchronized
        @param timeout The maximum time we keep trying (defaults to the configured sync_timeout)
        """
        if timeout is None:
            timeout = self.config.sync_timeout
        logger.debug('Sending dummy test command to check communication')
        self._write(self.frame(b'\x00'))
        try:
            self.read_ack()
            logger.debug('Bootloader is already synchronized')
            return
        except TransportError:
            logger.debug('No response received, performing auto baud procedure')
        deadline = time.monotonic() + timeout
        while True:
            self.port.reset_input_buffer()
            self._write(self.AUTOBAUD)
            try:
                if self.read_ack(timeout=min(self.config.ack_timeout, timeout)):
                    logger.debug('Auto baud finished correctly')
                    return
                logger.warning('Got a NACK during auto baud')
            except TransportError as e:
                logger.debug(f'No answer to auto baud ({e})')
            if time.monotonic() >= deadline:
                raise SyncError(f"Couldn't synchronize bootloader baudrate within {timeout}s")

    def get_status(self) -> int:
        """@brief Get the status of the last command processed by the target
        """
        return self.execute(CommandGetStatus())

    def check_status(self, command: SblCommand) -> None:
        """@brief Make sure the last command succeeded on the target
        @warning Raises CommandFailed otherwise
        """
        status = self.get_status()
        if status != COMMAND_RET_SUCCESS:
            logger.error(f'{command} failed: {status_code_to_str(status)} (0x{status:02x})')
            raise CommandFailed(status, command)

    def execute(self, command: SblCommand):
        """@brief Request execution of a specific command on the remote bootloader
        @param command The command to execute
        @return The outcome of the command (can be None, an int or bytes)
        """
        assert isinstance(command, SblCommand)  # command provided as argument should implement the SblCommand interface
        logger.debug('Sending command: ' + str(command))
        payload = command.get_as_buffer()
        if command.REJECTED_ON_NACK:
            if not self.transmit(payload):
                status = self.get_status()
                if status == COMMAND_RET_SUCCESS:
                    raise ProtocolError(f'{command} not acknowledged but status is {status_code_to_str(status)}')
                raise CommandFailed(status, command)
        else:
            self.send_packet(payload, max_retries=command.get_max_retries())
        reply_payload = None
        expected_reply_sz = command.get_expected_reply_sz()
        if expected_reply_sz > 0:
            reply_payload = self.read_packet(expected_reply_sz)
        if command.POLL_STATUS:
            self.check_status(command)
        outcome = command.parse_reply(reply_payload)
        if outcome is not None:
            logger.debug('parse_reply outcome: ' + str(outcome))
        return outcome


def invoke_bootloader(port: SerialPortInterface, active_low: bool = False, inverted: bool = False) -> None:
    """@brief Use the DTR and RTS lines to force the target into its bootloader (on boards wired for it)

    @param port The serial port whose control lines are connected to the target
    @param active_low The bootloader pin (the one configured in the CCA/CCFG) is active low
    @param inverted If False, DTR drives the bootloader pin and RTS drives !RESET, if True it is the other way around

    @note pyserial control lines are logically inverted on the wire (set_dtr(True) drives the pin low)
    """
    def set_bootloader_pin(level: bool):
        if inverted:
            port.set_rts(level)
        else:
            port.set_dtr(level)

    def set_reset_pin(level: bool):
        if inverted:
            port.set_dtr(level)
        else:
            port.set_rts(level)

    bootloader_active_high = not active_low
    logger.debug('Invoking bootloader using ' + ('RTS' if inverted else 'DTR') + ' as bootloader pin (active ' + ('high' if bootloader_active_high else 'low') + ')')
    set_bootloader_pin(not bootloader_active_high)
    set_reset_pin(False)
    set_reset_pin(True)
    set_reset_pin(False)
    time.sleep(0.002)   # Bootloader pin should still be asserted when the chip comes out of reset
    set_bootloader_pin(bootloader_active_high)


class Device:
    """@brief A target running the TI serial bootloader, bound to a chip family and an already open serial port

    @note The Device does not close the port, and does not synchronize automatically (see sync() or SblDeviceSession)
    """
    def __init__(self, port: SerialPortInterface, family: Family, config: Optional[SblConfig] = None, flash_size: Optional[int] = None):
        """@brief Constructor
        @param port The serial port we read/write data from/to
        @param family The chip family of the target
        @param config Timeouts and retry budget
        @param flash_size The installed flash size, when known (addresses are checked against the family's largest flash otherwise)
        """
        self.port = port
        self.family = family
        self.config = config if config is not None else SblConfig()
        self.flash_size = flash_size
        self.protocol = SblProtocol(port=port, config=self.config)

    @property
    def last_ack(self) -> Optional[bool]:
        """@brief The polarity of the last flow control symbol received (True for ACK)"""
        return self.protocol.last_ack

    def execute(self, command: SblCommand):
        return self.protocol.execute(command)

    def _check_flash_range(self, address: int, size: int):
        self.family.check_flash_range(address, size, self.flash_size)

    def sync(self, timeout: Optional[float] = None) -> None:
        self.protocol.sync(timeout)

    def invoke_bootloader(self, active_low: bool = False, inverted: bool = False) -> None:
        invoke_bootloader(self.port, active_low=active_low, inverted=inverted)

    def ping(self) -> bool:
        """@brief Ping the bootloader
        @return True if the target answered ACK
        """
        return self.protocol.transmit(CommandPing().get_as_buffer())

    def get_status(self) -> int:
        return self.protocol.get_status()

    def get_chip_id(self) -> int:
        return self.execute(CommandGetChipId())

    def download(self, address: int, size: int) -> None:
        """@brief Prepare flash programming of size bytes at address
        @note Must be followed by COMMAND_SEND_DATA commands carrying exactly size bytes in total
        """
        self._check_flash_range(address, size)
        self.execute(CommandDownload(address=address, size=size))

    def download_crc(self, address: int, size: int, crc: int) -> None:
        self.family.require(CAP_DOWNLOAD_CRC, CommandDownloadCrc.COMMAND_NAME)
        self._check_flash_range(address, size)
        self.execute(CommandDownloadCrc(address=address, size=size, crc=crc))

    def send_data(self, chunk: bytes, expect_ack: bool = True) -> bool:
        """@brief Send one chunk of data after a download command
        @param chunk The data (at most MAX_BYTES_PER_TRANSFER bytes)
        @param expect_ack If False, the chunk is sent only once and neither its ACK nor the status are checked (used for
                          configuration area writes, where the target may lock itself)
        @return The polarity of the target's answer
        """
        command = CommandSendData(chunk=chunk)
        if expect_ack:
            self.execute(command)
            return True
        return self.protocol.transmit(command.get_as_buffer())

    def erase(self, address: int, byte_count: int) -> None:
        self.family.require(CAP_ERASE, CommandErase.COMMAND_NAME)
        self._check_flash_range(address, byte_count)
        self.execute(CommandErase(address=address, byte_count=byte_count))

    def sector_erase(self, address: int) -> None:
        """@brief Erase one flash sector
        @param address The start address of the sector
        """
        self.family.require(CAP_SECTOR_ERASE, CommandSectorErase.COMMAND_NAME)
        if (address - self.family.flash_base()) % self.family.sector_size() != 0:
            raise InvalidAddress(f'0x{address:08x} is not the start address of a sector')
        self._check_flash_range(address, self.family.sector_size())
        self.execute(CommandSectorErase(address=address))

    def bank_erase(self) -> None:
        self.family.require(CAP_BANK_ERASE, CommandBankErase.COMMAND_NAME)
        self.execute(CommandBankErase())

    def crc32(self, address: int, size: int) -> int:
        """@brief Get the CRC32 of a flash area, as computed by the target
        """
        self._check_flash_range(address, size)
        return self.execute(CommandCrc32(address=address, size=size, with_read_repeat=self.family.supports(CAP_CRC32_READ_REPEAT)))

    def read_memory(self, address: int, word_count: int = 1) -> bytes:
        """@brief Read 32-bit words from the target address space
        @return The raw bytes, as stored in the target (little endian words)
        """
        if word_count > 1:
            self.family.require(CAP_MULTI_WORD_MEMORY_READ, 'Multi-word ' + CommandMemoryRead.COMMAND_NAME)
        return self.execute(CommandMemoryRead(address=address,
                                              word_count=word_count,
                                              counted_access=self.family.supports_multi_word_memory_read()))

    def memory_read_32(self, address: int) -> int:
        """@brief Read one 32-bit word from the target address space
        @param address A 32-bit aligned address
        """
        return int.from_bytes(self.read_memory(address, 1), byteorder='little')

    def set_xosc(self) -> None:
        self.family.require(CAP_SET_XOSC, CommandSetXosc.COMMAND_NAME)
        self.execute(CommandSetXosc())

    def set_ccfg(self, field_id: int, value: int) -> None:
        self.family.require(CAP_SET_CCFG, CommandSetCcfg.COMMAND_NAME)
        self.execute(CommandSetCcfg(field_id=field_id, value=value))

    def run(self, address: int) -> None:
        self.family.require(CAP_RUN, CommandRun.COMMAND_NAME)
        self.execute(CommandRun(address=address))

    def reset(self) -> None:
        self.execute(CommandReset())

    def __repr__(self):
        return f'Device({self.family}, {self.config})'


class SblDeviceSession:
    """@brief Class allowing RAII for communication sessions with the bootloader
    """
    def __init__(self, port: SerialPortInterface, family: Family, config: Optional[SblConfig] = None,
                 invoke_bootloader: bool = False, bootloader_active_low: bool = False, bootloader_inverted: bool = False):
        """@brief Constructor
        @param port The serial port we read/write data from/to
        @param family The chip family of the target
        @param config Timeouts and retry budget
        @param invoke_bootloader Toggle DTR/RTS to force the target into its bootloader before synchronizing
        @param bootloader_active_low See invoke_bootloader()
        @param bootloader_inverted See invoke_bootloader()
        """
        self.port = port
        self.family = family
        self.config = config
        self.invoke_bootloader = invoke_bootloader
        self.bootloader_active_low = bootloader_active_low
        self.bootloader_inverted = bootloader_inverted
        self.handler = None

    def get_handler(self) -> Device:
        """@brief Get a device handler to run commands on the target
        @return A Device instance (we'll create it at the first invokation, then keep it in cache)
        """
        if self.handler is None:
            self.handler = Device(port=self.port, family=self.family, config=self.config)
        return self.handler

    def __enter__(self) -> Device:
        device = self.get_handler()
        if self.invoke_bootloader:
            device.invoke_bootloader(active_low=self.bootloader_active_low, inverted=self.bootloader_inverted)
        device.sync()
        return device

    def __exit__(self, type, value, traceback):
        pass
