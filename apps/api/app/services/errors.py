from dataclasses import dataclass, field


@dataclass
class OrderDomainError(Exception):
    code: str
    message: str
    order_ids: list[int] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class InvalidMergeInput(OrderDomainError):
    def __init__(self, message: str, order_ids: list[int] | None = None) -> None:
        super().__init__(code="INVALID_MERGE_INPUT", message=message, order_ids=order_ids or [])


class NotMergeable(OrderDomainError):
    def __init__(self, message: str, order_ids: list[int] | None = None) -> None:
        super().__init__(code="NOT_MERGEABLE", message=message, order_ids=order_ids or [])


class InvalidGroupVerdict(OrderDomainError):
    def __init__(self, message: str, order_ids: list[int] | None = None) -> None:
        super().__init__(code="INVALID_GROUP_VERDICT", message=message, order_ids=order_ids or [])
