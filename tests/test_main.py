import os
import subprocess
import tempfile
import unittest
from unittest import mock

from pr_suggestion_applier import main
from pr_suggestion_applier.app_config import AppConfig
from pr_suggestion_applier.exceptions import SCMClientError
from pr_suggestion_applier.models import ReviewComment, ThreadComment

HUNK = "@@ -1,2 +1,2 @@\n def f():\n+    return 1"


def suggestion(comment_id, path="app.py", subject_type="", thread_id="", thread_comments=None):
    return ReviewComment(
        id=comment_id,
        path=path,
        line=2,
        diff_hunk=HUNK,
        body="```suggestion\n    return 2\n```",
        suggested_code="    return 2",
        has_suggestion=True,
        subject_type=subject_type,
        thread_id=thread_id,
        thread_comments=thread_comments or [],
    )


class TestSelectSuggestions(unittest.TestCase):
    def setUp(self):
        self.config = AppConfig(github_token="t", include_patterns=[], exclude_patterns=[])
        self.comments = [
            suggestion(1),
            suggestion(2, subject_type="resolved"),
            ReviewComment(id=3, path="app.py", line=4, body="nit"),
            suggestion(4, path="docs/readme.md"),
        ]

    def test_skips_plain_and_resolved_comments(self):
        selected = main.select_suggestions(self.comments, self.config)
        self.assertEqual([c.id for c in selected], [1, 4])

    def test_include_resolved(self):
        selected = main.select_suggestions(self.comments, self.config, include_resolved=True)
        self.assertEqual([c.id for c in selected], [1, 2, 4])

    def test_patterns(self):
        self.config.exclude_patterns = ["docs/"]
        self.assertEqual([c.id for c in main.select_suggestions(self.comments, self.config)], [1])


class TestCliOverrides(unittest.TestCase):
    def test_flags_override_config(self):
        args = main._build_parser().parse_args(
            ["apply", "12", "--all", "--repo", "octo/widgets", "--ai-model", "openai/gpt-4o",
             "--ai-token", "sk-1", "--file", "src/*.py", "--file", "lib/", "--debug"])
        config = main.apply_cli_overrides(AppConfig(github_token="t"), args)

        self.assertEqual(args.pr_number, 12)
        self.assertTrue(args.all)
        self.assertEqual(config.repo, "octo/widgets")
        self.assertEqual(config.ai_model, "openai/gpt-4o")
        self.assertEqual(config.ai_api_key, "sk-1")
        self.assertEqual(config.include_patterns, ["src/*.py", "lib/"])
        self.assertEqual(config.log_level, "DEBUG")

    def test_all_and_ai_auto_are_exclusive(self):
        with self.assertRaises(SystemExit):
            main._build_parser().parse_args(["apply", "--all", "--ai-auto"])


class TestWorkingTree(unittest.TestCase):
    @mock.patch("pr_suggestion_applier.main.subprocess.run")
    def test_dirty_detection(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout=" M app.py\n", stderr="")
        self.assertTrue(main.working_tree_is_dirty())
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        self.assertFalse(main.working_tree_is_dirty())

    @mock.patch("pr_suggestion_applier.main.subprocess.run", side_effect=FileNotFoundError)
    def test_missing_git_counts_as_dirty(self, mock_run):
        self.assertTrue(main.working_tree_is_dirty())


class TestMainCli(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self._cwd = os.getcwd()
        os.chdir(self._tmp.name)
        with open("app.py", "w", encoding="utf-8") as f:
            f.write("def f():\n    return 1\n")

        patcher = mock.patch("pr_suggestion_applier.main.GitHubClient")
        self.client_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.client_cls.return_value
        self.client.resolve_repo.return_value = "octo/widgets"
        self.client.fetch_review_comments.return_value = [suggestion(1)]

    def tearDown(self):
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def read_app(self):
        with open("app.py", encoding="utf-8") as f:
            return f.read()

    def test_lists_without_applying(self):
        with mock.patch("builtins.print") as mock_print:
            self.assertEqual(main.main_cli(["apply", "5", "--repo", "octo/widgets"]), 0)
        self.client.fetch_review_comments.assert_called_once_with(5)
        self.assertEqual(self.read_app(), "def f():\n    return 1\n")
        printed = [call.args[0] for call in mock_print.call_args_list]
        self.assertIn("app.py:2", printed)

    @mock.patch("pr_suggestion_applier.main.working_tree_is_dirty", return_value=False)
    def test_applies_all(self, mock_dirty):
        with mock.patch("builtins.print") as mock_print:
            self.assertEqual(main.main_cli(["apply", "5", "--all"]), 0)
        self.assertEqual(self.read_app(), "def f():\n    return 2\n")
        printed = [call.args[0] for call in mock_print.call_args_list]
        self.assertIn("Applied 1/1 suggestions (0 failed)", printed)

    @mock.patch("pr_suggestion_applier.main.working_tree_is_dirty", return_value=False)
    def test_failure_exit_code(self, mock_dirty):
        with open("app.py", "w", encoding="utf-8") as f:
            f.write("unrelated\n")
        with mock.patch("builtins.print") as mock_print:
            self.assertEqual(main.main_cli(["apply", "5", "--all"]), 1)
        printed = [call.args[0] for call in mock_print.call_args_list]
        self.assertIn("Applied 0/1 suggestions (1 failed)", printed)

    @mock.patch("pr_suggestion_applier.main.working_tree_is_dirty", return_value=True)
    def test_refuses_dirty_tree(self, mock_dirty):
        self.assertEqual(main.main_cli(["apply", "5", "--all"]), 1)
        self.assertEqual(self.read_app(), "def f():\n    return 1\n")

    @mock.patch("pr_suggestion_applier.main.working_tree_is_dirty", return_value=True)
    def test_allow_dirty(self, mock_dirty):
        with mock.patch("builtins.print"):
            self.assertEqual(main.main_cli(["apply", "5", "--all", "--allow-dirty"]), 0)
        mock_dirty.assert_not_called()

    def test_uses_current_branch_pr(self):
        self.client.get_current_branch_pr.return_value = 9
        with mock.patch("builtins.print"):
            main.main_cli(["apply"])
        self.client.fetch_review_comments.assert_called_once_with(9)

    def test_keyboard_interrupt(self):
        self.client.fetch_review_comments.side_effect = KeyboardInterrupt
        self.assertEqual(main.main_cli(["apply", "5"]), 130)

    def test_ai_mode_requires_model(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRSUGGEST_AI_MODEL", None)
            with mock.patch("pr_suggestion_applier.main.get_ai_provider") as mock_get:
                self.assertEqual(main.main_cli(["apply", "5", "--ai-auto", "--allow-dirty"]), 1)
        mock_get.assert_not_called()
        self.assertEqual(self.read_app(), "def f():\n    return 1\n")


class TestFindThreadComment(unittest.TestCase):
    def test_matches_top_level_and_reply_ids(self):
        comments = [
            suggestion(1, thread_id="PRRT_1", thread_comments=[ThreadComment(id=3, body="done")]),
            suggestion(2, thread_id="PRRT_2"),
        ]
        self.assertEqual(main.find_thread_comment(comments, 2).id, 2)
        self.assertEqual(main.find_thread_comment(comments, 3).id, 1)
        self.assertIsNone(main.find_thread_comment(comments, 4))


class TestResolveAndCommentCommands(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self._cwd = os.getcwd()
        os.chdir(self._tmp.name)

        patcher = mock.patch("pr_suggestion_applier.main.GitHubClient")
        self.client = patcher.start().return_value
        self.addCleanup(patcher.stop)
        self.client.fetch_review_comments.return_value = [
            suggestion(1, thread_id="PRRT_1", thread_comments=[ThreadComment(id=3, body="done")]),
            suggestion(2, thread_id="PRRT_2", subject_type="resolved"),
            suggestion(5),
        ]
        self.client.reply_to_review_comment.return_value = ThreadComment(id=99, body="ok", html_url="u99")

    def tearDown(self):
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def run_cli(self, argv):
        with mock.patch("builtins.print") as mock_print:
            code = main.main_cli(argv)
        return code, [call.args[0] for call in mock_print.call_args_list]

    def test_resolve_by_reply_id(self):
        code, printed = self.run_cli(["resolve", "3", "--pr", "7"])
        self.assertEqual(code, 0)
        self.client.fetch_review_comments.assert_called_once_with(7)
        self.client.resolve_thread.assert_called_once_with("PRRT_1")
        self.client.reply_to_review_comment.assert_not_called()
        self.assertIn("Resolved thread of comment 1 (app.py:2)", printed)

    def test_resolve_with_comment_from_file(self):
        with open("note.md", "w", encoding="utf-8") as f:
            f.write("Fixed in the latest push")
        code, _ = self.run_cli(["resolve", "1", "--pr", "7", "-c", "@note.md"])
        self.assertEqual(code, 0)
        self.client.reply_to_review_comment.assert_called_once_with(7, 1, "Fixed in the latest push")
        self.client.resolve_thread.assert_called_once_with("PRRT_1")

    def test_unresolve(self):
        code, _ = self.run_cli(["resolve", "2", "--pr", "7", "--unresolve"])
        self.assertEqual(code, 0)
        self.client.unresolve_thread.assert_called_once_with("PRRT_2")
        self.client.resolve_thread.assert_not_called()

    def test_resolve_all_skips_resolved_and_threadless(self):
        code, _ = self.run_cli(["resolve", "--all", "--pr", "7"])
        self.assertEqual(code, 0)
        self.client.resolve_thread.assert_called_once_with("PRRT_1")

    def test_unresolve_all(self):
        code, _ = self.run_cli(["resolve", "--all", "--unresolve", "--pr", "7"])
        self.assertEqual(code, 0)
        self.client.unresolve_thread.assert_called_once_with("PRRT_2")

    def test_resolve_unknown_or_threadless_comment(self):
        self.assertEqual(self.run_cli(["resolve", "42", "--pr", "7"])[0], 1)
        self.assertEqual(self.run_cli(["resolve", "5", "--pr", "7"])[0], 1)
        self.assertEqual(self.run_cli(["resolve", "--pr", "7"])[0], 1)
        self.client.resolve_thread.assert_not_called()

    def test_resolve_failure_exit_code(self):
        self.client.resolve_thread.side_effect = SCMClientError("forbidden")
        self.assertEqual(self.run_cli(["resolve", "1", "--pr", "7"])[0], 1)

    def test_comment_with_body(self):
        code, printed = self.run_cli(["comment", "3", "--pr", "7", "--body", "Thanks"])
        self.assertEqual(code, 0)
        self.client.reply_to_review_comment.assert_called_once_with(7, 3, "Thanks")
        self.client.resolve_thread.assert_not_called()
        self.assertIn("Replied to comment 3: u99", printed)

    def test_comment_from_stdin_and_resolve(self):
        with mock.patch("pr_suggestion_applier.main.sys.stdin") as mock_stdin:
            mock_stdin.read.return_value = "Done"
            code, _ = self.run_cli(["comment", "3", "--stdin", "--resolve"])
        self.assertEqual(code, 0)
        self.client.get_current_branch_pr.assert_called_once_with()
        pr_number = self.client.get_current_branch_pr.return_value
        self.client.reply_to_review_comment.assert_called_once_with(pr_number, 3, "Done")
        self.client.resolve_thread.assert_called_once_with("PRRT_1")

    def test_comment_body_file(self):
        with open("reply.txt", "w", encoding="utf-8") as f:
            f.write("See commit abc123")
        self.assertEqual(self.run_cli(["comment", "1", "--pr", "7", "--body-file", "reply.txt"])[0], 0)
        self.client.reply_to_review_comment.assert_called_once_with(7, 1, "See commit abc123")

    def test_comment_missing_body_file(self):
        self.assertEqual(self.run_cli(["comment", "1", "--pr", "7", "--body-file", "missing.txt"])[0], 1)
        self.client.reply_to_review_comment.assert_not_called()

    def test_comment_requires_a_body_source(self):
        with self.assertRaises(SystemExit):
            main._build_parser().parse_args(["comment", "1"])


if __name__ == '__main__':
    unittest.main()
