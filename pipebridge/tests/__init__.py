"""pipebridge test suite."""
