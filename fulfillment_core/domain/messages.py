from fulfillment_core.domain.demand import DemandLevel

VERIFY_SUCCESS = "Pickup code verified. Enjoy your meal!"

PICKUP_CODE_SMS = """
🍽️ Your order {order_number} is ready for pickup!
Show this code at the counter: *{code}*
The code expires in {ttl_minutes} minutes.
"""

SETTLEMENT_ADMIN_SMS = """
💰 *Settlement run finished*
{summary}
"""

DEMAND_RECOMMENDATIONS = {
    DemandLevel.LOW: "⚡ Order now for fastest service!",
    DemandLevel.MEDIUM: "👍 Good time to order",
    DemandLevel.HIGH: "⏰ Expect longer wait times",
    DemandLevel.VERY_HIGH: "🔥 Very busy - consider alternatives or order for later",
}


def invalid_code(attempts_remaining: int) -> str:
    plural = "" if attempts_remaining == 1 else "s"
    return f"Invalid code. {attempts_remaining} attempt{plural} remaining"


def settlement_summary(created: int, net_total: int, failed: int, skipped: int) -> str:
    if not (created or failed or skipped):
        return "No pending orders to settle"
    noun = "batch" if created == 1 else "batches"
    text = f"Created {created} payout {noun} totalling {net_total}"
    if skipped:
        text += f", {skipped} vendor group(s) skipped with nothing payable"
    if failed:
        text += f", {failed} vendor group(s) failed and will be retried on the next run"
    return text


def format_wait_time(minutes: int) -> str:
    if minutes < 1:
        return "Less than 1 min"
    if minutes == 1:
        return "1 min"
    if minutes < 60:
        return f"{minutes} mins"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} {'hour' if hours == 1 else 'hours'}"
    return f"{hours}h {remaining}m"


def demand_recommendation(level: DemandLevel) -> str:
    return DEMAND_RECOMMENDATIONS[level]
