from .machine import WaitState

TIMER_HZ = 60   # rate at which the host is expected to call tick_timers


def tick_timers(machine):
    """decrement delay/sound timers, never below zero, and end a pending display wait"""
    if machine.dt > 0:
        machine.dt -= 1
    if machine.st > 0:
        machine.st -= 1
    # the vertical blank the last sprite draw was waiting for has happened
    if machine.wait is WaitState.AWAITING_TICK:
        machine.wait = WaitState.RUNNING
