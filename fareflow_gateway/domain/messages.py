"""Rider-facing SMS text and email template variables"""

from datetime import datetime
from fareflow_gateway.domain.models import Notification, RiderAccount
from fareflow_gateway.domain.outcomes import SettlementOutcome, SettlementStatus
from fareflow_gateway.utils.date_utils import format_transaction_date, make_transaction_id

SUPPORT_HINT = "Please ensure you have sufficient balance or contact support."


def _success_sms(outcome: SettlementOutcome) -> str:
    route_line = ""
    if outcome.route is not None and (outcome.route.departure or outcome.route.destination):
        route_line = f"Route: {outcome.route.departure} to {outcome.route.destination}\n"

    return (
        "FareFlow Payment Successful\n\n"
        f"A fare of {outcome.fare_amount} {outcome.currency} has been deducted from your account\n"
        f"{route_line}"
        f"Your new balance is {outcome.new_balance} {outcome.currency}.\n\n"
        "Thank you for riding with us.\n"
        "Thank you for using FareFlow"
    )


def _status_text(outcome: SettlementOutcome) -> tuple[str, str]:
    if outcome.status is SettlementStatus.SUCCESS:
        return "Success", "Your fare payment has been processed successfully."

    if outcome.status is SettlementStatus.LOW_BALANCE:
        reason = f"Low balance. Minimum required: {outcome.minimum_balance} {outcome.currency}"
    elif outcome.status is SettlementStatus.INSUFFICIENT_FARE:
        reason = f"Insufficient balance for the fare. Needed: {outcome.fare_amount} {outcome.currency}."
    else:
        raise ValueError(f"No rider notification for outcome {outcome.status.value}")

    return (
        "Payment Failed",
        f"Unfortunately, your fare payment could not be processed. {reason}\n{SUPPORT_HINT}",
    )


def build_settlement_notification(
    outcome: SettlementOutcome,
    rider: RiderAccount,
    tz_name: str = "UTC",
) -> Notification:
    """
    Render the notification for a financial outcome (success, low balance,
    insufficient fare).

    For rejected payments current_balance equals previous_balance, since
    nothing was debited.
    """
    status_title, status_message = _status_text(outcome)
    sms_message = _success_sms(outcome) if outcome.is_success else outcome.message

    return Notification(
        phone=rider.phone,
        email=rider.email,
        sms_message=sms_message,
        template_params={
            "first_name": rider.first_name,
            "transaction_id": outcome.transaction_id,
            "transaction_date": format_transaction_date(outcome.settled_at, tz_name),
            "card_uid": outcome.card_uid,
            "fare_amount": outcome.fare_amount,
            "previous_balance": outcome.previous_balance,
            "current_balance": outcome.new_balance,
            "email": rider.email,
            "status_title": status_title,
            "status_message": status_message,
        },
    )


def build_topup_notification(
    card_uid: str,
    amount: int,
    new_balance: int,
    email: str,
    phone: str,
    first_name: str,
    loaded_at: datetime,
    currency: str = "UGX",
    tz_name: str = "UTC",
) -> Notification:
    """Render the balance top-up confirmation"""
    sms_message = (
        "\n------\nFareFlow TopUp Successful\n------\n"
        f"Hello {first_name}, Your FareFlow account {card_uid} has been topped up with {amount} {currency}.\n"
        f"New Balance: {new_balance} {currency}.\n"
        "Thank you for using FareFlow..."
    )

    return Notification(
        phone=phone,
        email=email,
        sms_message=sms_message,
        template_params={
            "transaction_id": make_transaction_id(card_uid, loaded_at),
            "transaction_date": format_transaction_date(loaded_at, tz_name),
            "card_uid": card_uid,
            "amount": amount,
            "current_balance": new_balance,
            "email": email,
            "first_name": first_name,
            "status_title": "Balance Top-Up Successful",
            "status_message": (
                f"You have successfully added {amount} {currency} to your FareFlow account.\n"
                "Thank you for using FareFlow...."
            ),
        },
    )
