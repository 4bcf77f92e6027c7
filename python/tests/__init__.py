"""
Test suite for deferred-timers.

Test Categories:
- Unit tests: delay resolution, host queues, settings and logging
- Controller tests: timeout and interval lifecycles on a simulated clock
- Host tests: short real-time runs on threads and on an asyncio loop
"""
