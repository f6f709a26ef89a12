# coding: utf-8
"""@brief Module providing context for flasher code
"""

from domain.ext_adapters_interface.progressbar_interface import ProgressBarInterface, ProgressBarFactoryInterface
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage
from domain.mcu_addressing import MCULogicalAddressRange

class FlasherContext:
    """@brief Flasher context container, including handlers for UI (logger, progressbar) and for file and target access
    @note This class is used for dependency injection
    """

    def __init__(self, name: str, progressbar_factory: ProgressBarFactoryInterface, logger, firmware_image: FirmwareImage, device):
        """@brief Construct a Flasher context container
        @param name The name of the context
        @param progressbar_factory A factory generating progress bar instances
        @param logger A logger to use
        @param firmware_image The firmware image to read data to program from, or to store dumped data into
        @param device The (already synchronized) bootloader Device to run commands on
        """
        self.name = name
        self.progressbar_factory = progressbar_factory
        self.logger = logger
        self.firmware_image = firmware_image
        self.device = device

    def create_progress_bar(self, name: str, min_value: int, max_value: int, *args, **kwargs) -> ProgressBarInterface:
        """@brief Construct a progress bar based on min and max values
        @param name The name of the progress bar
        @param min_value The minimum value for progress display (corresponds to 0% progress)
        @param max_value The maximum value for progress display (corresponds to 100% progress)
        @return The Progress bar that has been created
        @note All other arguments are to be passed as are to the ProgressBar contructor
        """
        return self.progressbar_factory.create(name=name, min_value=min_value, max_value=max_value, *args, **kwargs)

    def create_progress_bar_from_range(self, name: str, range: MCULogicalAddressRange, *args, **kwargs) -> ProgressBarInterface:
        """@brief Construct a progress bar from a MCULogicalAddressRange that will represent the min and max values
        @param name The name of the progress bar
        @param range The range containing the minimum and maximum values for progress display (corresponds to 0% to 100% progress)
        @note All other arguments are to be passed as are to the ProgressBar contructor
        """
        min_value = range.start_address
        max_value = range.end_address
        return self.create_progress_bar(name=name, min_value=min_value, max_value=max_value, *args, **kwargs)
