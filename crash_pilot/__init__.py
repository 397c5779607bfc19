"""
CrashPilot - watch the rocket, bail before it blows.

A polling agent for an on-chain crash game. It rebuilds each round's state
from the contract's views and event logs, and runs a bet/cashout loop that
submits signed transactions at the right moments.
"""

__version__ = "0.1.0"
