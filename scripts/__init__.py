"""
Scripts Package.

Operational entry points for the decision core.

Scripts:
- sync_patterns: Synthesize and store patterns from a backtest export
- evaluate_signal: Evaluate one signal and print the decision record
"""
