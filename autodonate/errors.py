class ValidationError(ValueError):
    """Bad request payload; routes answer 400."""


class NotFoundError(LookupError):
    pass


class InsufficientBalanceError(Exception):
    def __init__(self, balance, amount):
        super().__init__(f"insufficient balance: have {balance}, need {amount}")
        self.balance = balance
        self.amount = amount
