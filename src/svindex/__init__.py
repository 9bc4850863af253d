"""svindex - incremental symbol index for SystemVerilog source trees."""

__version__ = "0.1.0"
