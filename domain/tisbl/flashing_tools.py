#!/usr/bin/env python3
# coding: utf-8
import binascii
from typing import Dict, List, Optional

from logging import getLogger

from domain.flasher_context import FlasherContext
import domain.tisbl.sbl_comm as comm
from domain.tisbl.sbl_comm import Device
from domain.tisbl.sbl_errors import (CommandFailed, DownloadSizeError, EncodingError, ProtectedRegionError, ProtocolError,
                                     SblError, TransferFailedError, UnsupportedOperation)
from domain.tisbl.sbl_family import Family
from domain.tisbl.sbl_status import COMMAND_RET_INVALID_ADR, status_code_to_str    # status_code_to_str is re-exported
from domain.mcu_addressing import MCULogicalAddress, MCULocatedLogicalDataChunk, MCULogicalAddressRange
from domain.common import aggregate_close_data_segments, align_on_bytes, chunker, split_address_range_to_max_size
from domain.command_preprocessor import CommandPreprocessor

logger = getLogger(__name__)

class Transfer:
    """@brief A contiguous chunk of data to write in flash, downloaded to the target with one single COMMAND_DOWNLOAD
    """
    def __init__(self, data: bytes, start_address: int, expect_ack: bool = True):
        """@brief Constructor
        @param data The content to write
        @param start_address The flash address of the first byte of data
        @param expect_ack If False, chunks are sent once without checking the target's answer (configuration area writes,
                          where the target may lock itself out before acknowledging)
        """
        self.data = bytes(data)
        self.start_address = MCULogicalAddress(start_address)
        self.expect_ack = expect_ack
        self.bytes_written = 0  # Updated while the transfer is being written

    def to_address_range(self) -> MCULogicalAddressRange:
        return MCULogicalAddressRange.create_from_size(self.start_address, len(self.data))

    def __str__(self):
        return f'Transfer({len(self.data)} bytes @ 0x{self.start_address:08x}' + ('' if self.expect_ack else ', unacknowledged') + ')'

    def __repr__(self):
        return str(self)


class FlashDownload:
    """@brief Keep track of the data sent after a COMMAND_DOWNLOAD

    The target does not check that the COMMAND_SEND_DATA that follow a download carry exactly the declared size, so we do it here
    """
    def __init__(self, device: Device, start_address: int, size: int, crc: Optional[int] = None):
        """@brief Constructor
        @param device The target
        @param start_address The flash address of the first byte to download
        @param size The total number of bytes that will be sent
        @param crc If provided, use COMMAND_DOWNLOAD_CRC so that the target checks the data it receives against this CRC32
        """
        self.device = device
        self.start_address = MCULogicalAddress(start_address)
        self.size = size
        self.crc = crc
        self.sent = 0

    def begin(self) -> None:
        """@brief Declare the download to the target"""
        if self.crc is None:
            self.device.download(self.start_address, self.size)
        else:
            self.device.download_crc(self.start_address, self.size, self.crc)
        self.sent = 0

    def get_remaining(self) -> int:
        return self.size - self.sent

    def send(self, chunk: bytes, expect_ack: bool = True) -> bool:
        """@brief Send the next chunk of the download
        @return The polarity of the target's answer
        @warning Raises DownloadSizeError (and sends nothing) if chunk would overrun the declared size
        """
        if len(chunk) > self.get_remaining():
            raise DownloadSizeError(f'Chunk of {len(chunk)} bytes overruns download at 0x{self.start_address:08x} ({self.get_remaining()}/{self.size} bytes remaining)')
        ack = self.device.send_data(chunk, expect_ack=expect_ack)
        self.sent += len(chunk)
        return ack

    def finish(self) -> None:
        """@brief Make sure all declared bytes have been sent
        """
        if self.sent != self.size:
            raise DownloadSizeError(f'Download at 0x{self.start_address:08x} is incomplete: {self.sent}/{self.size} bytes sent')


def get_command_preprocessor(family: Family) -> CommandPreprocessor:
    """@brief Get a command preprocessor adapted to memory read commands of a chip family
    """
    max_read_size = 4 * (comm.MAX_MEMORY_READ_WORDS if family.supports_multi_word_memory_read() else 1)

    def align_memory_address_range(range: MCULogicalAddressRange) -> MCULogicalAddressRange:
        start_address = align_on_bytes(range.start_address, 4, excess=False)
        end_address = align_on_bytes(range.end_address, 4, excess=True)
        return MCULogicalAddressRange(start_address=start_address,
                                      end_address=end_address)

    def split_to_max_range(range: MCULogicalAddressRange) -> List[MCULogicalAddressRange]:
        return list(split_address_range_to_max_size(address_range=range, max_size=max_read_size))

    return CommandPreprocessor(aligner=align_memory_address_range, range_splitter=split_to_max_range)

def expect_ack(device: Device, ack: bool) -> None:
    """@brief Check the polarity of the last flow control symbol received from the target
    @param ack The expected polarity (True for ACK)
    @warning Raises ProtocolError on mismatch
    """
    if device.last_ack != ack:
        symbols = {True: 'ACK', False: 'NACK', None: 'nothing'}
        raise ProtocolError(f'Expected {symbols[ack]}, got {symbols[device.last_ack]}')

def read_flash_size(device: Device) -> int:
    """@brief Read the installed flash size from the target
    @return The flash size in bytes

    @note If the flash size register reads as 0 or as a value above the largest flash of the family, we probe memory instead
    """
    traits = device.family.traits
    register_value = device.memory_read_32(traits.flash_size_register)
    flash_size = traits.decode_flash_size(register_value)
    if 0 < flash_size <= traits.max_flash_size:
        logger.debug(f'Flash size register 0x{traits.flash_size_register:08x} = 0x{register_value:08x}, flash size is {flash_size} bytes')
        return flash_size
    logger.warning(f'Unexpected flash size register value 0x{register_value:08x}, probing flash memory instead')
    return probe_flash_size(device)

def probe_flash_size(device: Device) -> int:
    """@brief Find the end of flash by reading the last word of each possible flash size, from the largest one down
    @return The flash size in bytes

    @note An invalid address status on a read means the flash ends below this address
    """
    family = device.family
    for flash_size in range(family.traits.max_flash_size, 0, -family.sector_size()):
        last_word_address = family.flash_base() + flash_size - 4
        try:
            device.memory_read_32(last_word_address)
        except CommandFailed as e:
            if e.status != COMMAND_RET_INVALID_ADR:
                raise
            logger.debug(f'No flash at 0x{last_word_address:08x}')
            continue
        return flash_size
    raise ProtocolError('Could not find any readable flash address')

def get_flash_size(device: Device) -> int:
    """@brief Get the flash size bound to the device, reading it from the target (and keeping it) the first time
    """
    if device.flash_size is None:
        device.flash_size = read_flash_size(device)
    return device.flash_size

def _read_ieee_address_at(device: Device, address: int) -> bytes:
    low_word = device.read_memory(address, 1)
    high_word = device.read_memory(address + 4, 1)
    if device.family.traits.ieee_words_swapped:
        return high_word + low_word
    else:
        return (low_word + high_word)[::-1]

def read_ieee_address(device: Device) -> bytes:
    """@brief Read the factory-programmed IEEE 802.15.4 address
    @return The 8-byte address, most significant byte first (display order)
    """
    return _read_ieee_address_at(device, device.family.traits.ieee_primary_address)

def read_secondary_ieee_address(device: Device, flash_size: Optional[int] = None) -> bytes:
    """@brief Read the user-programmed IEEE 802.15.4 address stored in the configuration area (CCA/CCFG)
    @param flash_size The installed flash size (read from the target if not provided)
    @return The 8-byte address, most significant byte first (0xff bytes if not programmed)
    """
    if flash_size is None:
        flash_size = get_flash_size(device)
    traits = device.family.traits
    address = traits.flash_base + flash_size - traits.ieee_secondary_offset_from_end
    return _read_ieee_address_at(device, address)

def format_ieee_address(address: bytes) -> str:
    """@brief Format an IEEE address for display, eg: '00:12:4B:00:14:D2:A5:37'
    """
    return ':'.join('{:02X}'.format(b) for b in address)

def erase_flash_range(device: Device,
                      start_address: int,
                      length: int,
                      flash_size: Optional[int] = None,
                      allow_ccfg_overwrite: bool = False,
                      use_bank_erase: bool = False,
                      progress_updater = None) -> None:
    """@brief Erase all flash sectors overlapping [start_address, start_address+length[
    @param device The target
    @param start_address The first address to erase
    @param length The number of bytes to erase
    @param flash_size The installed flash size (taken from the device or read from the target if not provided)
    @param allow_ccfg_overwrite Allow erasing the sector holding the configuration area (CCA/CCFG)
    @param use_bank_erase Allow one single COMMAND_BANK_ERASE instead of per-sector erases, when the family supports it and more than one sector is concerned
    @param progress_updater A handler used to display progress

    @warning Raises ProtectedRegionError before sending anything if the configuration area would be erased without permission
    """
    if length <= 0:
        return
    family = device.family
    if flash_size is None:
        flash_size = get_flash_size(device)
    family.check_flash_range(start_address, length, flash_size)
    first_page = family.address_to_page(start_address)
    last_page = family.address_to_page(start_address + length - 1)
    bank_erase = use_bank_erase and family.supports_bank_erase() and last_page > first_page
    if bank_erase:
        erased_range = family.flash_range(flash_size)
    else:
        erased_range = MCULogicalAddressRange(start_address=family.page_to_address(first_page), end_address=family.page_to_address(last_page + 1))
    if not allow_ccfg_overwrite and erased_range.intersects(family.ccfg_range(flash_size)):
        raise ProtectedRegionError(f'Erasing {erased_range} would erase the configuration area {family.ccfg_range(flash_size)}')

    if family.supports_erase():
        logger.info(f'Erasing {length} bytes at address 0x{start_address:08x}')
        device.erase(start_address, length)
        if progress_updater is not None:
            progress_updater.update(erased_range.end_address)
    elif bank_erase:
        logger.info('Erasing whole flash bank')
        device.bank_erase()
        if progress_updater is not None:
            progress_updater.update(erased_range.end_address)
    elif family.supports_sector_erase():
        for page in range(first_page, last_page + 1):
            sector_address = family.page_to_address(page)
            logger.info(f'Erasing sector #{page}, address: 0x{sector_address:08x}')
            device.sector_erase(sector_address)
            if progress_updater is not None:
                progress_updater.update(sector_address + family.sector_size())
    else:
        raise UnsupportedOperation(f'No erase command available on {family}')

def write_flash_range(device: Device, transfer: Transfer, progress_updater = None, use_crc: bool = False) -> None:
    """@brief Write one transfer to flash: one download followed by chunks of at most MAX_BYTES_PER_TRANSFER bytes
    @param device The target
    @param transfer The data to write and its location
    @param progress_updater A handler used to display progress
    @param use_crc Let the target check the downloaded data against its CRC32 (when the family supports it)

    @note transfer.bytes_written tells how far the write went if an exception is raised
    """
    transfer.bytes_written = 0
    if len(transfer.data) == 0:
        return
    crc = None
    if use_crc and transfer.expect_ack and device.family.supports_download_crc():
        crc = binascii.crc32(transfer.data) & 0xffffffff
    download = FlashDownload(device, transfer.start_address, len(transfer.data), crc=crc)
    download.begin()
    for chunk_index, chunk in enumerate(chunker(transfer.data, comm.MAX_BYTES_PER_TRANSFER)):
        chunk_address = transfer.start_address + transfer.bytes_written
        logger.debug(f'Writing chunk #{chunk_index} ({len(chunk)} B) at address 0x{chunk_address:08x} (page: {device.family.address_to_page(chunk_address)})')
        ack = download.send(chunk, expect_ack=transfer.expect_ack)
        if not ack:
            logger.warning(f'Unacknowledged chunk #{chunk_index} at address 0x{chunk_address:08x}')
        transfer.bytes_written += len(chunk)
        if progress_updater is not None:
            progress_updater.update(chunk_address + len(chunk))
    download.finish()

def write_flash_transfers(device: Device, transfers: List[Transfer], progress_updater = None, use_crc: bool = False) -> None:
    """@brief Write a list of transfers, in order
    @warning On failure, raises TransferFailedError telling which transfer failed and at which offset (flash is left partially written)
    """
    logger.info(f'{len(transfers)} transfer(s)')
    for transfer_index, transfer in enumerate(transfers):
        logger.info(f'Writing transfer #{transfer_index}: {transfer}')
        try:
            write_flash_range(device, transfer, progress_updater=progress_updater, use_crc=use_crc)
        except SblError as e:
            raise TransferFailedError(str(e),
                                      transfer_index=transfer_index,
                                      offset=transfer.bytes_written,
                                      address=transfer.start_address + transfer.bytes_written) from e

def plan_flash_transfers(family: Family,
                         start_address: int,
                         image: bytes,
                         flash_size: Optional[int] = None,
                         allow_ccfg_overwrite: bool = False) -> List[Transfer]:
    """@brief Turn a binary image into the transfers that will write it
    @param family The chip family of the target
    @param start_address Where the first byte of image will be written
    @param image The binary content
    @param flash_size The installed flash size (the largest flash of the family is assumed if not provided)
    @param allow_ccfg_overwrite Allow writing the configuration area (CCA/CCFG)
    @return Transfers with increasing addresses, the part of the image covering the configuration area being a separate unacknowledged transfer

    @note The image is padded with 0xff so that it starts on a 32-bit aligned address and spans a multiple of 4 bytes
    """
    if len(image) == 0:
        return []
    aligned_start_address = align_on_bytes(start_address, 4, excess=False)
    padded_image = b'\xff' * (start_address - aligned_start_address) + bytes(image)
    padded_image += b'\xff' * (-len(padded_image) % 4)
    start_address = aligned_start_address
    family.check_flash_range(start_address, len(padded_image), flash_size)
    image_range = MCULogicalAddressRange.create_from_size(start_address, len(padded_image))
    ccfg_range = family.ccfg_range(flash_size)
    if not image_range.intersects(ccfg_range):
        return [Transfer(data=padded_image, start_address=start_address)]
    if not allow_ccfg_overwrite:
        raise ProtectedRegionError(f'Image {image_range} may overwrite the configuration area {ccfg_range}')
    logger.warning(f'Image overwrites the configuration area {ccfg_range}')
    ccfg_offset = max(0, ccfg_range.start_address - start_address)
    transfers = []
    if ccfg_offset > 0:
        transfers.append(Transfer(data=padded_image[:ccfg_offset], start_address=start_address))
    transfers.append(Transfer(data=padded_image[ccfg_offset:], start_address=start_address + ccfg_offset, expect_ack=False))
    return transfers

def read_flash_range(device: Device, address_range: MCULogicalAddressRange, progress_updater = None) -> bytes:
    """@brief Read the content of the target's memory within an address range
    @param device The target
    @param address_range The range to read (any alignment)
    @param progress_updater A handler used to display progress
    @return The bytes read
    """
    cmd_preprocessor = get_command_preprocessor(device.family)
    aligned_range = cmd_preprocessor.apply_alignment_to(address_range)
    data = bytearray()
    for read_range in cmd_preprocessor.apply_range_split_to(aligned_range):
        data += device.read_memory(read_range.start_address, read_range.get_size() // 4)
        if progress_updater is not None:
            progress_updater.update(read_range.end_address)
    leading_bytes = address_range.start_address - aligned_range.start_address
    return bytes(data[leading_bytes:leading_bytes + address_range.get_size()])

def _merge_erase_ranges(family: Family, address_ranges: List[MCULogicalAddressRange]) -> List[MCULogicalAddressRange]:
    """@brief Get the minimal list of sector-aligned ranges covering all provided ranges
    """
    pages = set()
    for address_range in address_ranges:
        pages.update(range(family.address_to_page(address_range.start_address), family.address_to_page(address_range.end_address - 1) + 1))
    merged_ranges: List[MCULogicalAddressRange] = []
    for page in sorted(pages):
        page_start = family.page_to_address(page)
        page_end = family.page_to_address(page + 1)
        if len(merged_ranges) > 0 and merged_ranges[-1].end_address == page_start:
            merged_ranges[-1] = MCULogicalAddressRange(start_address=merged_ranges[-1].start_address, end_address=page_end)
        else:
            merged_ranges.append(MCULogicalAddressRange(start_address=page_start, end_address=page_end))
    return merged_ranges

def sbl_info_cmd(context: FlasherContext) -> Dict[str, object]:
    """@brief Read and log the identification of the target
    @param context The context container for flashing operations
    @return The information read, as a dict
    """
    device = context.device
    info: Dict[str, object] = {'family': str(device.family)}
    info['chip_id'] = device.get_chip_id()
    context.logger.info(f"Chip ID: 0x{info['chip_id']:08x}")
    info['flash_size'] = get_flash_size(device)
    context.logger.info(f"Flash size: {info['flash_size'] // 1024} KB ({info['flash_size']} bytes)")
    info['ieee_address'] = format_ieee_address(read_ieee_address(device))
    context.logger.info(f"Primary IEEE address: {info['ieee_address']}")
    info['secondary_ieee_address'] = format_ieee_address(read_secondary_ieee_address(device))
    context.logger.info(f"Secondary IEEE address: {info['secondary_ieee_address']}")
    return info

def sbl_program_cmd(context: FlasherContext,
                    erase: bool = False,
                    allow_ccfg_overwrite: bool = False,
                    use_bank_erase: bool = False,
                    use_crc: bool = False) -> None:
    """@brief Program the firmware image into the target
    @param context The context container for flashing operations
    @param erase Erase the flash sectors covered by the image first
    @param allow_ccfg_overwrite Allow erasing and writing the configuration area (CCA/CCFG)
    @param use_bank_erase Use a bank erase rather than sector erases, when supported
    @param use_crc Let the target check each download against its CRC32, when supported
    """
    device = context.device
    flash_size = get_flash_size(device)
    if not device.ping():
        context.logger.warning('Ping not acknowledged')
    expect_ack(device, True)
    segments: List[MCULogicalAddressRange] = list(aggregate_close_data_segments(context.firmware_image.get_segments()))
    if len(segments) == 0:
        raise EncodingError('Firmware image is empty')
    transfers: List[Transfer] = []
    for segment in segments:
        chunk: MCULocatedLogicalDataChunk = context.firmware_image.get_data_chunk_for_range(segment)
        transfers += plan_flash_transfers(family=device.family,
                                          start_address=chunk.start_address,
                                          image=chunk.get_content(),
                                          flash_size=flash_size,
                                          allow_ccfg_overwrite=allow_ccfg_overwrite)
    context.logger.debug('Planned transfers: ' + ', '.join(str(t) for t in transfers))

    if erase:
        erase_ranges = _merge_erase_ranges(device.family, [t.to_address_range() for t in transfers])
        if use_bank_erase:
            erase_ranges = [MCULogicalAddressRange(start_address=erase_ranges[0].start_address, end_address=erase_ranges[-1].end_address)]
        with context.create_progress_bar(name="Erasing flash ", min_value=erase_ranges[0].start_address, max_value=erase_ranges[-1].end_address, show_eta=False) as bar:
            bar.start()
            for erase_range in erase_ranges:
                erase_flash_range(device,
                                  start_address=erase_range.start_address,
                                  length=erase_range.get_size(),
                                  flash_size=flash_size,
                                  allow_ccfg_overwrite=allow_ccfg_overwrite,
                                  use_bank_erase=use_bank_erase,
                                  progress_updater=bar)
            bar.finish()

    with context.create_progress_bar(name="Writing flash ", min_value=transfers[0].start_address, max_value=transfers[-1].to_address_range().end_address, show_eta=True) as bar:
        bar.start()
        write_flash_transfers(device, transfers, progress_updater=bar, use_crc=use_crc)
        bar.finish()

    context.logger.info('Flashing succeeded!')

def sbl_verify_cmd(context: FlasherContext) -> bool:
    """@brief Check that the firmware image is properly stored in the target, comparing CRC32 computed by the target
    @param context The context container for flashing operations
    @return True if the firmware matches
    """
    device = context.device
    get_flash_size(device)
    segments: List[MCULogicalAddressRange] = list(aggregate_close_data_segments(context.firmware_image.get_segments()))
    if len(segments) == 0:
        raise EncodingError('Firmware image is empty')
    firmware_matches = True
    with context.create_progress_bar(name="Checking flash ", min_value=segments[0].start_address, max_value=segments[-1].end_address, show_eta=False) as bar:
        bar.start()
        for segment in segments:
            content = context.firmware_image.get_data_chunk_for_range(segment).get_content()
            expected_crc = binascii.crc32(content) & 0xffffffff
            remote_crc = device.crc32(segment.start_address, segment.get_size())
            if remote_crc != expected_crc:
                context.logger.error(f'CRC32 mismatch for {segment}: target computed 0x{remote_crc:08x}, expected 0x{expected_crc:08x}')
                firmware_matches = False
            else:
                context.logger.debug(f'CRC32 0x{remote_crc:08x} matches for {segment}')
            bar.update(segment.end_address)
        bar.finish()
    return firmware_matches

def sbl_dump_cmd(context: FlasherContext, address_range: Optional[MCULogicalAddressRange] = None) -> None:
    """@brief Read the target's flash into the firmware image
    @param context The context container for flashing operations
    @param address_range The range to read (the whole flash if not provided)
    """
    device = context.device
    if address_range is None:
        address_range = device.family.flash_range(get_flash_size(device))

    with context.create_progress_bar_from_range(name="Reading flash ", range=address_range, show_eta=True) as bar:
        bar.start()
        data = read_flash_range(device, address_range, progress_updater=bar)
        context.firmware_image.put_data_chunk(MCULocatedLogicalDataChunk(start_address=address_range.start_address, content=data))
        bar.finish()
