"""Tests for scheduler module."""

import unittest
from dataclasses import replace
from pathlib import Path

from taskscope.inventory import TaskInventory
from taskscope.parser import TaskDefinition
from taskscope.scheduler import Scheduler, SpawnRequested
from taskscope.tasks import DefinitionTask, OneshotTask
from taskscope.variables import TaskContext, TaskVariables, VariableName


def _context(cwd="/dir", **variables):
    return TaskContext(cwd=Path(cwd), task_variables=TaskVariables(variables.items()))


class _MutatingTask(OneshotTask):
    def __init__(self):
        super().__init__("echo")

    def prepare_exec(self, context):
        context.task_variables.insert(VariableName.SYMBOL, "rewritten")
        spawn = super().prepare_exec(context)
        return replace(spawn, args=[context.task_variables[VariableName.SYMBOL]])


class TestSchedule(unittest.TestCase):
    def setUp(self):
        self.inventory = TaskInventory()
        self.scheduler = Scheduler(self.inventory)
        self.events = []
        self.scheduler.subscribe(self.events.append)
        self.symbol_task = DefinitionTask(
            "b", TaskDefinition(label="test symbol", command="cargo", args=["test", "{{ ctx.symbol }}"])
        )

    def test_successful_prepare_records_and_emits(self):
        self.scheduler.schedule(self.symbol_task, _context(symbol="it_works"))
        self.assertEqual(len(self.events), 1)
        self.assertIsInstance(self.events[0], SpawnRequested)
        self.assertEqual(self.events[0].spawn.args, ["test", "it_works"])
        task, context = self.inventory.last_scheduled_task()
        self.assertIs(task, self.symbol_task)
        self.assertEqual(context.task_variables[VariableName.SYMBOL], "it_works")

    def test_failed_prepare_changes_nothing(self):
        previous = OneshotTask("make")
        self.scheduler.schedule(previous, _context())
        self.events.clear()

        self.scheduler.schedule(self.symbol_task, _context())
        self.assertEqual(self.events, [])
        self.assertIs(self.inventory.last_scheduled_task()[0], previous)

    def test_history_written_before_listeners_run(self):
        seen = []
        self.scheduler.subscribe(lambda event: seen.append(self.inventory.last_scheduled_task()[0]))
        self.scheduler.schedule(self.symbol_task, _context(symbol="x"))
        self.assertEqual(seen, [self.symbol_task])

    def test_omit_history(self):
        self.scheduler.schedule(self.symbol_task, _context(symbol="x"), omit_history=True)
        self.assertEqual(len(self.events), 1)
        self.assertIsNone(self.inventory.last_scheduled_task())

    def test_context_is_cloned(self):
        context = _context(symbol="before")
        self.scheduler.schedule(self.symbol_task, context)
        context.task_variables.insert("symbol", "after")
        _, recorded = self.inventory.last_scheduled_task()
        self.assertEqual(recorded.task_variables["symbol"], "before")

    def test_prepare_cannot_change_recorded_context(self):
        task = _MutatingTask()
        self.scheduler.schedule(task, _context(symbol="original"))
        self.assertEqual(self.events[0].spawn.args, ["rewritten"])
        _, recorded = self.inventory.last_scheduled_task()
        self.assertEqual(recorded.task_variables["symbol"], "original")

    def test_unsubscribe(self):
        other = []
        unsubscribe = self.scheduler.subscribe(other.append)
        unsubscribe()
        unsubscribe()
        self.scheduler.schedule(OneshotTask("make"), _context())
        self.assertEqual(other, [])
        self.assertEqual(len(self.events), 1)


class TestRerun(unittest.TestCase):
    def setUp(self):
        self.inventory = TaskInventory()
        self.scheduler = Scheduler(self.inventory)
        self.events = []
        self.scheduler.subscribe(self.events.append)
        self.task = DefinitionTask(
            "b", TaskDefinition(label="echo symbol", command="echo", args=["{{ ctx.symbol }}"])
        )

    def test_nothing_to_rerun(self):
        self.assertFalse(self.scheduler.rerun(False))
        self.assertEqual(self.events, [])

    def test_stale_rerun_reuses_recorded_context(self):
        self.scheduler.schedule(self.task, _context(cwd="/first", symbol="old"))
        self.events.clear()

        factory_calls = []
        self.assertTrue(self.scheduler.rerun(False, lambda: factory_calls.append(1) or _context(symbol="new")))
        self.assertEqual(factory_calls, [])
        self.assertEqual(self.events[0].spawn.args, ["old"])
        self.assertEqual(self.events[0].spawn.cwd, Path("/first"))

    def test_reevaluated_rerun_uses_fresh_context(self):
        self.scheduler.schedule(self.task, _context(cwd="/first", symbol="old"))
        self.events.clear()

        self.assertTrue(self.scheduler.rerun(True, lambda: _context(cwd="/second", symbol="new")))
        self.assertEqual(self.events[0].spawn.args, ["new"])
        self.assertEqual(self.events[0].spawn.cwd, Path("/second"))
        _, recorded = self.inventory.last_scheduled_task()
        self.assertEqual(recorded.task_variables["symbol"], "new")

    def test_reevaluated_rerun_that_cannot_prepare(self):
        self.scheduler.schedule(self.task, _context(symbol="old"))
        self.events.clear()

        self.assertTrue(self.scheduler.rerun(True, lambda: _context()))
        self.assertEqual(self.events, [])
        _, recorded = self.inventory.last_scheduled_task()
        self.assertEqual(recorded.task_variables["symbol"], "old")

    def test_reevaluate_requires_factory(self):
        self.scheduler.schedule(self.task, _context(symbol="old"))
        with self.assertRaises(ValueError):
            self.scheduler.rerun(True)

    def test_rerun_omitting_history(self):
        self.scheduler.schedule(self.task, _context(symbol="old"))
        self.scheduler.rerun(True, lambda: _context(symbol="new"), omit_history=True)
        _, recorded = self.inventory.last_scheduled_task()
        self.assertEqual(recorded.task_variables["symbol"], "old")
        self.assertEqual(self.events[-1].spawn.args, ["new"])

    def test_factory_errors_propagate(self):
        self.scheduler.schedule(self.task, _context(symbol="old"))

        def factory():
            raise RuntimeError("ambiguous")

        with self.assertRaises(RuntimeError):
            self.scheduler.rerun(True, factory)


if __name__ == "__main__":
    unittest.main()
