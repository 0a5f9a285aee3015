"""pytest integration for the proxy agent harness."""
