"""Server bootstrap: step tracking, callback signing and the base stack."""
