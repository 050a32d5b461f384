"""
Trading Engine Components

Core cycle components:
- signal_scorer: Additive indicator score per direction, emits Signals
- fallback_signal: Forced-entry strategy used when nothing qualifies
- position_sizer: Risk budget and stop distance to lot size
- close_analyzer: Per-position HOLD / CLOSE / PARTIAL_CLOSE / MOVE_STOP decisions
- account_lease: Exclusive per-account cycle lease
- orchestrator: TradingOrchestrator.run_cycle control loop
"""
