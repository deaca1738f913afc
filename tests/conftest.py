import asyncio

import numpy as np
import pytest

from core.types import DESCRIPTOR_SIZE, EnrolledIdentity, FrameObservation, Rect


def make_descriptor(value=0.0, index=None):
    """128-d descriptor filled with ``value``; ``index`` sets one component to 1."""
    vec = np.full(DESCRIPTOR_SIZE, value, dtype=np.float32)
    if index is not None:
        vec[index] = 1.0
    return vec


def make_identity(label, descriptor=None, student_id=None, record_id=None):
    return EnrolledIdentity(
        label=label,
        descriptor=make_descriptor() if descriptor is None else descriptor,
        student_id=student_id if student_id is not None else f"NIM-{label}",
        record_id=record_id,
    )


def observation_at(x, y, descriptor=None, size=100.0):
    """Face whose box centre lands at (x, y)."""
    return FrameObservation(
        box=Rect(x=x - size / 2, y=y - size / 2, width=size, height=size),
        descriptor=make_descriptor() if descriptor is None else descriptor,
    )


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    @property
    def kinds(self):
        return [event.kind.value for event in self.events]


class FakeStore:
    """In-memory store; ``results`` scripts successive commit outcomes."""

    def __init__(self, identities=(), results=None, commit_gate=None, fetch_error=None):
        self.identities = list(identities)
        self.results = list(results or [])
        self.commit_gate = commit_gate
        self.fetch_error = fetch_error
        self.fetch_calls = 0
        self.commits = []

    async def fetch_enrolled_identities(self):
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.identities)

    async def commit(self, identity):
        self.commits.append(identity)
        if self.commit_gate is not None:
            await self.commit_gate.wait()
        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        return result


class FakeSleep:
    """Records countdown sleeps without waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def fake_sleep():
    return FakeSleep()
