"""Contract tests: fakes and real implementations honour the same protocols."""
