"""Transient data shapes produced by the BOQ parsing pipeline."""
