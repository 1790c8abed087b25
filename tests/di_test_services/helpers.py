from __future__ import annotations

from dataclasses import dataclass, field

_ORDER_SINK: list[str] | None = None


def set_order_sink(sink: list[str] | None) -> None:
    global _ORDER_SINK
    _ORDER_SINK = sink


def append_order(value: str) -> None:
    if _ORDER_SINK is not None:
        _ORDER_SINK.append(value)


@dataclass
class Person:
    name: str = ""


@dataclass
class People:
    people: list[Person] = field(default_factory=list)


class Transaction:
    pass


@dataclass
class UserStorage:
    transaction: Transaction


@dataclass
class ItemStorage:
    transaction: Transaction


@dataclass
class MyService:
    transaction: Transaction
    user_storage: UserStorage
    item_storage: ItemStorage


@dataclass(frozen=True)
class Greeter:
    greeting: str = "Hello"
    logger: object = None

    def with_logger(self, logger: object) -> Greeter:
        return Greeter(greeting=self.greeting, logger=logger)

    def with_greeting(self, greeting: str) -> Greeter:
        return Greeter(greeting=greeting, logger=self.logger)

    def greet(self, name: str) -> str:
        return f"{self.greeting} {name}"


class Settings:
    name: str
    age: int
    color: str
    language: str

    def __init__(self) -> None:
        self.name = ""
        self.age = 0
        self.color = ""
        self.language = ""

    def set_name(self, name: str) -> None:
        self.name = name

    def set_color(self, color: str) -> None:
        if not color:
            raise ValueError("color must not be empty")
        self.color = color

    def set_language(self, language: str) -> None:
        self.language = language

    def with_logger(self, logger: object) -> object:
        return logger
