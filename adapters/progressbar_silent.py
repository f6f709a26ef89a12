# coding: utf-8
"""@brief Module implementing a non-drawing progress bar
"""
from domain.ext_adapters_interface.progressbar_interface import ProgressBarInterface, ProgressBarFactoryInterface

class SilentProgressBar(ProgressBarInterface):
    """@brief Concrete implementation of ProgressBarInterface that displays nothing (used when debug logs are output)"""
    def __init__(self, name: str, min_value: int, max_value: int, show_eta: bool = False, *args, **kwargs):
        pass

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        pass

    def update(self, value: int, raise_on_out_of_bounds = False):
        pass

    def finish(self):
        pass

    def start(self):
        pass

class SilentProgressBarFactory(ProgressBarFactoryInterface):
    @staticmethod
    def create(*args, **kwargs):
        return SilentProgressBar(*args, **kwargs)
