"""
HRX Campaign Engine - scheduling, lifecycle and automation core for AI
engagement campaigns.
"""
__version__ = "1.0.0"
