"""Parsers that turn uploaded BOQ documents into ParseResults."""
