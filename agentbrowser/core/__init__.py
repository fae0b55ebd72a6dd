"""Configuration resolution for agentbrowser."""
