from enum import Enum


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING


class Decision(str, Enum):
    """An evaluator's terminal verdict."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Role(str, Enum):
    DEVELOPER = "developer"
    EVALUATOR = "evaluator"


# Page paths enforced by the route guard
ENTRY_PATH = "/"
SUBMIT_PATH = "/submit"
EVALUATE_PATH = "/evaluate"

ROLE_HOME: dict[Role, str] = {
    Role.DEVELOPER: SUBMIT_PATH,
    Role.EVALUATOR: EVALUATE_PATH,
}
