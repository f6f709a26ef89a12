# coding: utf-8
"""@brief Exceptions raised while talking to a TI serial bootloader
"""
from domain.tisbl.sbl_status import status_code_to_str

class SblError(Exception):
    pass

class EncodingError(SblError):
    """@brief A local size, length or alignment constraint was violated, nothing was sent to the target"""
    pass

class DownloadSizeError(EncodingError):
    """@brief The data sent during a download does not match the size declared to the target"""
    pass

class TransportError(SblError):
    """@brief No acknowledgement within the retry budget, or I/O failure on the serial port"""
    pass

class SyncError(TransportError):
    """@brief The autobaud handshake never completed"""
    pass

class ProtocolError(SblError):
    """@brief The target answered something the protocol does not allow at this point"""
    pass

class UnsupportedOperation(SblError):
    """@brief The command is not available on the family the device is bound to"""
    pass

class InvalidAddress(SblError):
    """@brief An address or length falls outside the flash window or breaks an alignment rule"""
    pass

class ProtectedRegionError(SblError):
    """@brief An erase or write would touch the configuration area without explicit permission"""
    pass

class CommandFailed(SblError):
    """@brief The target explicitly reported a non-success status for the last command"""
    def __init__(self, status: int, command=None):
        self.status = status
        self.command = command
        message = f'{status_code_to_str(status)} (0x{status:02x})'
        if command is not None:
            message = f'{command} failed: ' + message
        super().__init__(message)

class TransferFailedError(SblError):
    """@brief A transfer could not be written entirely, flash is left partially programmed"""
    def __init__(self, generic_message: str, transfer_index: int, offset: int, address: int):
        self.transfer_index = transfer_index
        self.offset = offset
        self.address = address
        super().__init__(f'Transfer #{transfer_index}, offset 0x{offset:x} (address 0x{address:08x}): ' + generic_message)
