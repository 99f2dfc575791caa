from __future__ import annotations

import importlib
import os
import unittest
from unittest.mock import patch

from flask import Flask

from souklist.utils.observability import init_sentry


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("souklist")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        with patch.dict(os.environ, {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}, clear=False):
            module = importlib.import_module("main")
        self.assertIsNotNone(getattr(module, "app", None))

    def test_import_segments(self):
        for name in (
            "segment_listings",
            "segment_add_ons",
            "segment_payments",
            "segment_admin",
            "segment_catalog",
            "segment_cron",
        ):
            self.assertIsNotNone(importlib.import_module(f"souklist.segments.{name}"))

    def test_celery_schedule_targets_registered_tasks(self):
        from souklist.celery_app import beat_schedule
        from souklist.tasks import maintenance_tasks

        names = {entry["task"] for entry in beat_schedule().values()}
        self.assertEqual(
            names,
            {maintenance_tasks.run_featured_sweep.name, maintenance_tasks.run_monthly_reset.name},
        )

    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            init_sentry(app)

    def test_production_requires_strong_secret(self):
        from souklist import create_app

        env = {"SOUKLIST_ENV": "prod", "SECRET_KEY": "short", "DATABASE_URL": "sqlite:///:memory:"}
        with patch.dict(os.environ, env, clear=False):
            with self.assertRaises(RuntimeError):
                create_app()


if __name__ == "__main__":
    unittest.main()
