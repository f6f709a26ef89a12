#!/usr/bin/env python3
# coding: utf-8

from typing import List, Iterator
from logging import getLogger, StreamHandler, Formatter
from logging import WARNING

from domain.mcu_addressing import MCULogicalAddressRange, MCULogicalAddress

def create_main_logger(name: str, log_level=WARNING, also_log_libs: bool = False):
    """@brief Create the main applicative logger and return it
    @param name The name of the logger
    @param log_level The log level over which logs are output
    @param also_log_libs Also configure all python loggers similarly to the main applicative logger
    """
    LOG_FORMAT = "%(asctime)s :: %(levelname)s :: %(name)s: %(message)s"
    main_logger = getLogger(name=name)
    main_logger.handlers = []
    main_logger.setLevel(log_level)
    stream_handler = StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(Formatter(LOG_FORMAT))
    if also_log_libs:
        root_logger = getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(stream_handler)
    else:  # We do not enable a handler on the main_logger if the root logger is already generating messages to avoid duplicates
        main_logger.addHandler(stream_handler)
    return main_logger

def aggregate_close_data_segments(address_segments: List[MCULogicalAddressRange], min_gap: int = 16) -> Iterator[MCULogicalAddressRange]:
    """@brief Aggregate a list of segments into possibly larger segments when consecutive segments sufficiently close to one another
    @param address_segments A list of MCULogicalAddressRange for each consecutive segment to try to aggregate
    @param min_gap The minimum gap between two consecutive data segments, if a smaller gap exists, segments will be aggregated
    @return Sequence of MCULogicalAddressRange objects for each consecutive (possibly aggregated) segment

    @note This allows us to avoid downloading ridiculously small blocks, but we will only aggregate successive entries (ie, not if they are not in order)
    """
    start_addr = None
    end_addr = None
    for segment in address_segments:
        if end_addr is None:  # First segment, use as is
            start_addr = segment.start_address
            end_addr = segment.end_address
        else:
            if end_addr <= segment.start_address and (segment.start_address - end_addr) < min_gap: # Less than min_gap bytes of padding between two segments, aggregate both
                end_addr = segment.end_address
            else:
                yield MCULogicalAddressRange(start_address=start_addr, end_address=end_addr)
                start_addr = segment.start_address
                end_addr = segment.end_address
    if end_addr is not None and start_addr is not None:
        yield MCULogicalAddressRange(start_address=start_addr, end_address=end_addr)

def align_on_bytes(address: int, multiple: int, excess: bool = True) -> MCULogicalAddress:
    """@brief Make sure address is aligned on a multiple-bytes boundary
    @param address The address to align
    @param multiple The alignment, in bytes (eg: 4 for 32-bit words)
    @param excess If set to True, and input address is not aligned, we will align to the next boundary. If set to False, we will align to the previous boundary
    @return The closest aligned address after (if excess==True) or before (if excess=False) the provided address
    """
    if excess:
        address += multiple - 1
    return MCULogicalAddress((address // multiple) * multiple)

def split_address_range_to_max_size(address_range: MCULogicalAddressRange, max_size: int) -> Iterator[MCULogicalAddressRange]:
    """@brief Split a range of logical addresses into possibly smaller ranges given a max permitted range size
    @param address_range A MCULogicalAddressRange to split if too large
    @param max_size The maximum size of each resulting range
    @return Sequence of MCULogicalAddressRange objects for each consecutive (possibly split) range
    """
    while address_range.get_size() > max_size:
        pending_range_start_address = address_range.start_address
        pending_range_end_address = address_range.start_address + max_size
        address_range = MCULogicalAddressRange(start_address=pending_range_end_address, end_address=address_range.end_address)
        yield MCULogicalAddressRange(start_address=pending_range_start_address, end_address=pending_range_end_address)
    if address_range.get_size() > 0:  # There is a remaining range that fits into the max_size
        yield address_range

def chunker(buffer: bytes, size: int) -> Iterator[bytes]:
    """@brief Cut a buffer into consecutive slices of at most size bytes
    """
    return (buffer[pos:pos + size] for pos in range(0, len(buffer), size))

def to_hex_str(buffer: bytes) -> str:
    """@brief Format a buffer for wire traces, eg: '03 20 20'
    """
    return ' '.join('{:02x}'.format(b) for b in buffer)
