"""
polling.py — poll a probe until it reports success or the attempt budget runs out.
"""

import logging
import time

logger = logging.getLogger()


def poll_until(probe, attempts, delay, retry_on=(Exception,), sleep=time.sleep, label="probe"):
    """
    Call ``probe()`` up to ``attempts`` times, sleeping ``delay`` seconds between
    calls. A truthy return value ends the loop and is returned. A falsy value or
    one of the ``retry_on`` exceptions counts as a failed attempt.

    Returns None when every attempt failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            result = probe()
        except retry_on as exc:
            logger.info(f"{label}: attempt {attempt}/{attempts} failed ({exc.__class__.__name__}: {exc})")
        else:
            if result:
                logger.info(f"{label}: succeeded on attempt {attempt}/{attempts}")
                return result
            logger.info(f"{label}: attempt {attempt}/{attempts} not ready yet")

        if attempt < attempts:
            sleep(delay)

    return None
