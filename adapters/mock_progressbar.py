# coding: utf-8
"""@brief Module implementing a stub progress bar
"""
from typing import List

from domain.ext_adapters_interface.progressbar_interface import ProgressBarInterface

class MockProgressBar(ProgressBarInterface):
    """@brief Concrete implementation of ProgressBarInterface for unit test purposes, recording all updates"""
    def __init__(self, name: str, min_value: int, max_value: int, show_eta: bool = False, *args, **kwargs):
        self.name = name
        self.min_value = min_value
        self.max_value = max_value
        self.bar_active = False
        self.finished = False
        self.current_percent = None
        self.updates: List[int] = []

    def _generate_bar_if_needed(self):
        if not self.bar_active:
            self.bar_active = True
            self.current_percent = 0

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        pass

    def update(self, value: int, raise_on_out_of_bounds = False):
        self._generate_bar_if_needed()
        if value < self.min_value or value > self.max_value:
            if raise_on_out_of_bounds:
                raise IndexError("Update value out of bounds")
            value = min(max(value, self.min_value), self.max_value)
        self.updates.append(value)
        value_range = self.max_value - self.min_value
        offset_in_range = value - self.min_value
        self.current_percent = offset_in_range / value_range if value_range > 0 else 1.0
    
    def finish(self):
        self._generate_bar_if_needed()
        self.current_percent = 1.0
        self.bar_active = False
        self.finished = True
    
    def start(self):
        self._generate_bar_if_needed()

