"""SAPS firearm status enquiry: gateway, result parser and client."""

__version__ = "1.0.0"
