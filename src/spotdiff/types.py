from typing import Literal

type Phase = Literal["idle", "running", "ended"]
type EndCause = Literal["completed", "timed_out", "too_many_wrong_attempts"]
type DeliveryOutcome = Literal["idle", "pending", "in_flight", "delivered", "rejected", "incomplete"]
