"""Core building blocks shared by every stratus module."""
