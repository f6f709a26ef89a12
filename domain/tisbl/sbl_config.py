# coding: utf-8
"""@brief Serial link and protocol timing settings used to talk to a TI serial bootloader
"""

class SblConfig:
    """@brief Explicit configuration passed to the transport and to serial port adapters

    @note All TI bootloaders use 8 data bits, no parity, 1 stop bit and no flow control, only the baudrate usually needs to be changed
    """
    DEFAULT_BAUDRATE = 115200

    def __init__(self, baudrate: int = DEFAULT_BAUDRATE,
                       bytesize: int = 8,
                       parity: str = 'N',
                       stopbits: int = 1,
                       rtscts: bool = False,
                       read_timeout: float = 0.2,
                       ack_timeout: float = 1.0,
                       sync_timeout: float = 5.0,
                       max_retries: int = 3):
        """@brief Constructor
        @param baudrate The serial link speed (the bootloader detects it during the autobaud sequence)
        @param bytesize The number of data bits
        @param parity The parity ('N', 'E' or 'O')
        @param stopbits The number of stop bits
        @param rtscts Use hardware flow control
        @param read_timeout The timeout (in s) applied on each individual read from the serial port
        @param ack_timeout The maximum time (in s) we wait for an ACK or NACK symbol after sending a packet
        @param sync_timeout The maximum time (in s) we keep trying the autobaud sequence
        @param max_retries The number of retransmissions allowed when the target answers NACK (0 means we try only once)
        """
        if baudrate <= 0:
            raise ValueError(f'Invalid baudrate {baudrate}')
        if max_retries < 0:
            raise ValueError(f'Invalid max_retries {max_retries}')
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.rtscts = rtscts
        self.read_timeout = read_timeout
        self.ack_timeout = ack_timeout
        self.sync_timeout = sync_timeout
        self.max_retries = max_retries

    def __str__(self):
        return f'{self.baudrate} {self.bytesize}{self.parity}{self.stopbits}'
