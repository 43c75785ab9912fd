"""Tests for prompt inference and prompt matching."""

from __future__ import annotations

from termpilot.terminal.prompt import detect_prompt_pattern, ends_with_prompt


class TestDetectPromptPattern:
    """Startup banner -> prompt pattern."""

    def test_bash_prompt(self) -> None:
        banner = "Last login: Mon\nuser@host:~/project$ "
        pattern = detect_prompt_pattern(banner)
        assert pattern is not None
        assert pattern.search("user@host:~/project$")

    def test_root_prompt(self) -> None:
        pattern = detect_prompt_pattern("root@box:/# ")
        assert pattern is not None
        assert pattern.search("root@box:/#")

    def test_python_repl(self) -> None:
        banner = 'Python 3.12.1 (main)\nType "help" for more information.\n>>> '
        pattern = detect_prompt_pattern(banner)
        assert pattern is not None
        assert pattern.search(">>>")

    def test_mysql_prompt(self) -> None:
        pattern = detect_prompt_pattern("Welcome to the MySQL monitor.\n\nmysql> ")
        assert pattern is not None
        assert pattern.search("mysql>")

    def test_short_colon_line_uses_heuristic(self) -> None:
        pattern = detect_prompt_pattern("Connected.\nPassword:")
        assert pattern is not None
        assert pattern.search("Password:")

    def test_literal_line_is_escaped(self) -> None:
        pattern = detect_prompt_pattern("[dev] (main)$ ")
        assert pattern is not None
        assert pattern.search("[dev] (main)$")
        assert not pattern.search("d (main)$x")

    def test_no_prompt(self) -> None:
        assert detect_prompt_pattern("Loading modules...\nStarting up") is None

    def test_empty_output(self) -> None:
        assert detect_prompt_pattern("") is None
        assert detect_prompt_pattern("\n\n   \n") is None

    def test_trailing_blank_lines_ignored(self) -> None:
        pattern = detect_prompt_pattern("sqlite> \n\n\n")
        assert pattern is not None
        assert pattern.search("sqlite>")


class TestEndsWithPrompt:
    """Prompt reappearance at the bottom of the screen."""

    def test_prompt_on_last_line(self) -> None:
        pattern = detect_prompt_pattern("user@host:~$ ")
        screen = "user@host:~$ ls\nfile.txt\nuser@host:~$ "
        assert ends_with_prompt(screen, pattern)

    def test_prompt_followed_by_blank_lines(self) -> None:
        pattern = detect_prompt_pattern(">>> ")
        assert ends_with_prompt("1024\n>>> \n\n", pattern)

    def test_output_still_running(self) -> None:
        pattern = detect_prompt_pattern("user@host:~$ ")
        assert not ends_with_prompt("user@host:~$ make\ncompiling foo.c", pattern)

    def test_no_pattern_never_matches(self) -> None:
        assert not ends_with_prompt("anything$ ", None)

    def test_only_tail_is_considered(self) -> None:
        pattern = detect_prompt_pattern("$ ")
        screen = "$ \nline1\nline2\nline3\nline4"
        assert not ends_with_prompt(screen, pattern)
