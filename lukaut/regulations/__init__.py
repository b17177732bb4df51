"""OSHA regulation reference data."""
