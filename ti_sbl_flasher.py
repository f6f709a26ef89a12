#!/usr/bin/env python3
# coding: utf-8
"""Flasher for TI CC2538/CC26x0/CC26x2 chips running the ROM serial bootloader

Usage:
  ti_sbl_flasher.py [options] <command> <serial_port> [<firmware_filename>]
  ti_sbl_flasher.py list

Where <command> is one of the following:
- program: write <firmware_filename> (Intel Hex, or raw binary if its extension is .bin)
- verify: compare the flash content with <firmware_filename> (using the CRC32 computed by the target)
- dump: read the flash content into <firmware_filename>
- info: display the chip ID, flash size and IEEE addresses
- list: list the serial ports available on this host

Options:
  -d                Output debug logs (use twice to also output logs from libraries)
  -e                Erase the sectors covered by the firmware before writing it
  -f                Force the write of the configuration area (CCA/CCFG). Depending on its content, you may end up locking
                    yourself out of the device
  -a <address>      Address of the first byte of a raw binary firmware (defaults to the start of flash), or of the dump
  -l <length>       Number of bytes to dump (defaults to the end of flash)
  -b <baudrate>     Serial port baud rate
  -x                Switch to the external crystal oscillator (CC2538 only)
  --family <family> Device family: cc2538, cc26x0 or cc26x2
  --bank-erase      Use one bank erase rather than sector erases with -e (implies erasing the whole flash, requires -f)
  --crc             Let the target check each download against its CRC32 (CC26x2 only)
  --bl-invoke       Invoke the bootloader by toggling the DTR/RTS pins (on supported boards). By default DTR is connected to
                    the bootloader pin (the pin set in CCA/CCFG) and RTS to !RESET
  --bl-inverted     With --bl-invoke, use DTR as !RESET and RTS as bootloader pin
  --bl-active-low   With --bl-invoke, the bootloader pin is active low

Note:
TI_SBL_BAUDRATE environment variable can provide a default baud rate (115200 otherwise)
TI_SBL_FAMILY environment variable can provide a default device family (cc26x2 otherwise)
"""

from logging import DEBUG, INFO
import sys
import os

from domain.mcu_addressing import MCULogicalAddressRange
from domain.tisbl.sbl_comm import SblDeviceSession
from domain.tisbl.sbl_config import SblConfig
from domain.tisbl.sbl_errors import SblError
from domain.tisbl.sbl_family import Family
import domain.tisbl.flashing_tools as ftools
from domain.common import create_main_logger
from domain.flasher_context import FlasherContext
from adapters.firmware_image_python_intelhex import PythonIntelHexFirmwareImage
from adapters.port_lister_pyserial import list_serial_ports
from adapters.progressbar_progressbar2 import ProgressBar2Factory
from adapters.progressbar_silent import SilentProgressBarFactory
from adapters.serial_port_pyserial import open_serial_port

DEFAULT_FAMILY = 'cc26x2'
SUPPORTED_COMMANDS = ('program', 'verify', 'dump', 'info', 'list')

class CliUsageError(Exception):
    pass

class CliOptions:
    """@brief Options and arguments provided on the command line
    """
    def __init__(self):
        self.command = None
        self.serial_port = None
        self.firmware_filename = None
        self.debug = False
        self.debug_libs = False
        self.erase = False
        self.force = False
        self.address = None
        self.length = None
        self.baudrate = SblConfig.DEFAULT_BAUDRATE
        self.family = Family.from_name(DEFAULT_FAMILY)
        self.enable_xosc = False
        self.bank_erase = False
        self.use_crc = False
        self.bl_invoke = False
        self.bl_inverted = False
        self.bl_active_low = False

def _parse_int(option: str, value: str) -> int:
    try:
        return int(value, 0)
    except ValueError as e:
        raise CliUsageError(f"Invalid value '{value}' for option {option}") from e

def parse_args(argv, environ=None) -> CliOptions:
    """@brief Extract command-line arguments
    @param argv The arguments, without the program name
    @param environ The environment variables to read defaults from (os.environ if None)
    @note Simplistic built-in version without external dependencies
    """
    if environ is None:
        environ = os.environ
    argv = list(argv)
    options = CliOptions()
    try:
        if 'TI_SBL_BAUDRATE' in environ:
            options.baudrate = _parse_int('TI_SBL_BAUDRATE', environ['TI_SBL_BAUDRATE'])
        if 'TI_SBL_FAMILY' in environ:
            options.family = Family.from_name(environ['TI_SBL_FAMILY'])
        while len(argv) > 0 and argv[0].startswith('-'):
            option = argv.pop(0)
            if option == '-d':
                if not options.debug:
                    options.debug = True
                else:
                    options.debug_libs = True
            elif option == '-e':
                options.erase = True
            elif option == '-f':
                options.force = True
            elif option == '-x':
                options.enable_xosc = True
            elif option == '--bank-erase':
                options.bank_erase = True
            elif option == '--crc':
                options.use_crc = True
            elif option == '--bl-invoke':
                options.bl_invoke = True
            elif option == '--bl-inverted':
                options.bl_inverted = True
            elif option == '--bl-active-low':
                options.bl_active_low = True
            elif option in ('-a', '-l', '-b', '--family'):
                if len(argv) == 0:
                    raise CliUsageError(f'Missing value for option {option}')
                value = argv.pop(0)
                if option == '-a':
                    options.address = _parse_int(option, value)
                elif option == '-l':
                    options.length = _parse_int(option, value)
                elif option == '-b':
                    options.baudrate = _parse_int(option, value)
                else:
                    options.family = Family.from_name(value)
            else:
                raise CliUsageError(f"Unknown leading option: '{option}'")
    except ValueError as e:
        raise CliUsageError(str(e)) from e

    if len(argv) == 0:
        raise CliUsageError('Not enough arguments')
    options.command = argv.pop(0)
    if options.command not in SUPPORTED_COMMANDS:
        raise CliUsageError(f"Unsupported command '{options.command}'")
    if options.command == 'list':
        if len(argv) > 0:
            raise CliUsageError('Too many arguments')
        return options
    if len(argv) == 0:
        raise CliUsageError('Missing serial port')
    options.serial_port = argv.pop(0)
    if options.command in ('program', 'verify', 'dump'):
        if len(argv) == 0:
            raise CliUsageError('Missing firmware filename')
        options.firmware_filename = argv.pop(0)
    if len(argv) > 0:
        raise CliUsageError('Too many arguments')
    if (options.bl_inverted or options.bl_active_low) and not options.bl_invoke:
        raise CliUsageError("--bl-inverted and --bl-active-low can't be used if --bl-invoke is not specified")
    if options.enable_xosc and not options.family.supports_set_xosc():
        raise CliUsageError(f'XOSC can only be enabled on {Family.CC2538} family')
    if options.baudrate <= 0:
        raise CliUsageError(f'Invalid baudrate {options.baudrate}')
    return options

def list_ports_cmd() -> None:
    ports = list_serial_ports()
    if len(ports) == 0:
        print('No serial port found')
    for port in ports:
        print(f'- {port}')

def get_dump_range(options: CliOptions, flash_size: int) -> MCULogicalAddressRange:
    """@brief Get the address range to dump, from -a and -l options
    """
    flash_range = options.family.flash_range(flash_size)
    start_address = options.address if options.address is not None else flash_range.start_address
    if options.length is not None:
        end_address = start_address + options.length
    else:
        end_address = flash_range.end_address
    if end_address <= start_address:
        raise CliUsageError(f'Empty dump range starting at 0x{start_address:08x}')
    return MCULogicalAddressRange(start_address=start_address, end_address=end_address)

def run(options: CliOptions, logger) -> int:
    """@brief Run the command requested on the command line
    @return The process exit code
    """
    if options.command == 'list':
        list_ports_cmd()
        return 0

    firmware = PythonIntelHexFirmwareImage()
    if options.command in ('program', 'verify'):
        try:
            firmware.read_from(options.firmware_filename,
                               start_address=(options.address if options.address is not None else options.family.flash_base()))
        except Exception as e:
            logger.error("Error while reading input firmware file '" + options.firmware_filename + "': " + str(e))
            return 1

    config = SblConfig(baudrate=options.baudrate)
    logger.info(f'Opening serial port {options.serial_port} ({config})')
    with open_serial_port(options.serial_port, config) as port:
        session = SblDeviceSession(port=port,
                                   family=options.family,
                                   config=config,
                                   invoke_bootloader=options.bl_invoke,
                                   bootloader_active_low=options.bl_active_low,
                                   bootloader_inverted=options.bl_inverted)
        with session as device:
            logger.info(f'Target is synchronized ({options.family})')
            if options.enable_xosc:
                logger.info('Switching to XOSC')
                device.set_xosc()
                device.sync()   # The bootloader needs a new auto baud after the clock switch

            if not logger.isEnabledFor(DEBUG):
                progressbar_factory=ProgressBar2Factory
            else:
                progressbar_factory=SilentProgressBarFactory

            flasher_ctx = FlasherContext(name='cli',
                                         progressbar_factory=progressbar_factory,
                                         logger=logger,
                                         firmware_image=firmware,
                                         device=device)
            if options.command == 'info':
                ftools.sbl_info_cmd(context=flasher_ctx)
            elif options.command == 'program':
                ftools.sbl_program_cmd(context=flasher_ctx,
                                       erase=options.erase,
                                       allow_ccfg_overwrite=options.force,
                                       use_bank_erase=options.bank_erase,
                                       use_crc=options.use_crc)
            elif options.command == 'verify':
                if not ftools.sbl_verify_cmd(context=flasher_ctx):
                    logger.error('Firmware mismatch')
                    return 2
                logger.info('Firmware matches')
            elif options.command == 'dump':
                dump_range = get_dump_range(options, ftools.get_flash_size(device))
                ftools.sbl_dump_cmd(context=flasher_ctx, address_range=dump_range)
                firmware.write_to(options.firmware_filename)
            else:
                raise NotImplementedError
    return 0

def main():
    try:
        options = parse_args(sys.argv[1:])
    except CliUsageError as e:
        print(str(e), file=sys.stderr)
        print(__doc__, file=sys.stderr) # Output usage
        sys.exit(1)
    logger = create_main_logger(name='ti_sbl_flasher', log_level=(DEBUG if options.debug else INFO), also_log_libs=options.debug_libs)
    try:
        exit_code = run(options, logger)
    except (SblError, CliUsageError) as e:
        logger.error(str(e))
        sys.exit(1)
    except OSError as e:
        logger.error(f'Serial port error: {e}')
        sys.exit(1)
    if exit_code == 0:
        logger.info('Done')
    sys.exit(exit_code)

if __name__ == "__main__":
    main()
