"""Error kinds raised by flows and their collaborators.

Every error carries ``user_message``, the single chat message shown when the
error ends a flow or a command.
"""


class FlowError(Exception):
    user_message = "❌ Something went wrong. Please try again later."

    def __init__(self, message=None):
        if message is not None:
            self.user_message = message
        super().__init__(self.user_message)


class NotConnected(FlowError):
    user_message = "❌ Please create or import a wallet first."


class UnknownFlow(FlowError):
    def __init__(self, flow_id):
        self.flow_id = flow_id
        super().__init__(f"❌ Unknown operation: {flow_id}")


class FlowAlreadyActive(FlowError):
    def __init__(self, flow_id):
        self.flow_id = flow_id
        super().__init__(
            "⏳ Another operation is still in progress. "
            "Finish it or send /cancel first."
        )


class InvalidSecret(FlowError):
    user_message = "❌ Invalid private key. Please try again."


class InsufficientBalance(FlowError):
    def __init__(self, balance, required, symbol):
        self.balance = balance
        self.required = required
        self.symbol = symbol
        super().__init__(
            f"⚠️ Insufficient balance. You need at least {required} {symbol}, "
            f"but your balance is {balance} {symbol}."
        )


class InvalidReply(FlowError):
    """A reply that should be re-prompted for rather than end the flow."""


class ValidationFailed(InvalidReply):
    def __init__(self, field, reason):
        self.field = field
        self.reason = reason
        super().__init__(f"❌ Invalid {field.replace('_', ' ')}: {reason}")


class UnknownSelection(InvalidReply):
    def __init__(self, selection):
        self.selection = selection
        super().__init__("⚠️ Unknown selection. Please choose one of the options below.")


class Cancelled(FlowError):
    user_message = "❌ Operation cancelled."


class TimedOut(FlowError):
    def __init__(self, field=None):
        self.field = field
        super().__init__("⌛ No reply received in time. Operation cancelled.")


class UpstreamUnavailable(FlowError):
    def __init__(self, service, detail=None):
        self.service = service
        self.detail = detail
        super().__init__(f"❌ {service} is unavailable right now. Please try again later.")


class NotFound(FlowError):
    def __init__(self, what):
        self.what = what
        super().__init__(f"❌ Couldn't find {what}.")
