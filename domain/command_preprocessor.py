#!/usr/bin/env python3
# coding: utf-8
from typing import List, Callable
from domain.mcu_addressing import MCULogicalAddressRange

class CommandPreprocessor:
    def __init__(self,
                 aligner: Callable[[MCULogicalAddressRange], MCULogicalAddressRange]=lambda x:x,
                 range_splitter: Callable[[MCULogicalAddressRange], List[MCULogicalAddressRange]]=lambda x:[x]):
        """@brief Construct a command preprocessor environment
        @param aligner A function to align addresses
        @param range_splitter A function to split address ranges to a dimension that is acceptable by underlying commands to the target
        """
        if not callable(aligner):
            raise TypeError("aligner argument is not callable")
        self.aligner = aligner
        if not callable(range_splitter):
            raise TypeError("range_splitter argument is not callable")
        self.range_splitter = range_splitter

    def apply_alignment_to(self, range: MCULogicalAddressRange) -> MCULogicalAddressRange:
        return self.aligner(range)

    def apply_range_split_to(self, range: MCULogicalAddressRange) -> List[MCULogicalAddressRange]:
        return self.range_splitter(range)
