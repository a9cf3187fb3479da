"""ATS note formatting and writeback."""
