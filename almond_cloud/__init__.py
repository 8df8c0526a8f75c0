"""Thingpedia data-access service and Genie training driver."""

__version__ = "0.1.0"
