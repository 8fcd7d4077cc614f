"""
BPM Forms Module.

Keeps the gateway's local system-of-record for BPM process instances (leave,
overtime, business trip, leave cancellation, attendance exception forms) in
sync with the external BPM engine, mirrors writes to a secondary store, and
accepts batch pushes from the BPM middleware.
"""
