# coding: utf-8
"""@brief Status codes returned by the bootloader COMMAND_GET_STATUS command
"""

COMMAND_RET_SUCCESS = 0x40
COMMAND_RET_UNKNOWN_CMD = 0x41
COMMAND_RET_INVALID_CMD = 0x42
COMMAND_RET_INVALID_ADR = 0x43
COMMAND_RET_FLASH_FAIL = 0x44

STATUS_CODE_NAMES = {
    COMMAND_RET_SUCCESS: 'COMMAND_RET_SUCCESS',
    COMMAND_RET_UNKNOWN_CMD: 'COMMAND_RET_UNKNOWN_CMD',
    COMMAND_RET_INVALID_CMD: 'COMMAND_RET_INVALID_CMD',
    COMMAND_RET_INVALID_ADR: 'COMMAND_RET_INVALID_ADR',
    COMMAND_RET_FLASH_FAIL: 'COMMAND_RET_FLASH_FAIL',
}

def status_code_to_str(status: int) -> str:
    """@brief Get a human-readable name for a status byte
    @param status The status byte returned by the target
    @return The status name, or 'Unknown' for values outside the defined set
    """
    return STATUS_CODE_NAMES.get(status, 'Unknown')
