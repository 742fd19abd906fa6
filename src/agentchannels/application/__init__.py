"""Application layer - inbound pipelines and channel use cases."""
