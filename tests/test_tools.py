"""
Tool Tests
==========
Registry, function adapter, input validation and the reference tools.
"""

import asyncio
import os
import sys
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

posix_only = pytest.mark.skipif(os.name != "posix", reason="shell semantics differ on Windows")


def ctx(workspace=None, token=None):
    from tessera_agent.models import ToolContext
    return ToolContext(agent_id="a", session_id="s", workspace_root=workspace, cancel_token=token)


# ============================================================
# 1. REGISTRY
# ============================================================

class TestToolRegistry:
    def test_register_and_get(self):
        from tessera_agent.tools.base import FunctionTool
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        tool = FunctionTool("greet", lambda name: f"Hello {name}", "Greet someone")
        registry.register(tool)
        assert registry.get("greet") is tool
        assert "greet" in registry
        assert len(registry) == 1

    def test_unknown_tool_is_none(self):
        from tessera_agent.tools.registry import ToolRegistry
        assert ToolRegistry().get("missing") is None

    def test_register_replaces(self):
        from tessera_agent.tools.base import FunctionTool
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        registry.register(FunctionTool("t", lambda: "one"))
        second = FunctionTool("t", lambda: "two")
        registry.register(second)
        assert registry.get("t") is second
        assert len(registry) == 1

    def test_register_requires_name(self):
        from tessera_agent.tools.base import FunctionTool
        from tessera_agent.tools.registry import ToolRegistry
        with pytest.raises(ValueError):
            ToolRegistry().register(FunctionTool("", lambda: None))

    def test_unregister(self):
        from tessera_agent.tools.base import FunctionTool
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        registry.register(FunctionTool("t", lambda: None))
        assert registry.unregister("t") is True
        assert registry.unregister("t") is False
        assert registry.list() == []

    def test_get_by_names_keeps_order(self):
        from tessera_agent.tools.base import FunctionTool
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        for name in ("a", "b", "c"):
            registry.register(FunctionTool(name, lambda: None))
        assert [t.name for t in registry.get_by_names(["c", "missing", "a"])] == ["c", "a"]

    def test_register_function_schema(self):
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        schema = {
            "name": "greet",
            "description": "Greet someone",
            "parameters": {"type": "object", "properties": {"name": {"type": "string"}}},
        }
        registry.register_function(lambda name: f"Hello {name}", schema)
        assert registry.get_schema("greet") == schema
        assert registry.get_schema("missing") == {}

    def test_load_builtins(self):
        from tessera_agent.tools.registry import ToolRegistry
        registry = ToolRegistry()
        registry.load_builtins()
        assert set(registry.list()) == {
            "read_file", "write_file", "list_directory", "search_files", "run_command",
        }

    def test_load_builtins_without_terminal(self):
        from tessera_agent.tools.registry import create_tool_registry
        registry = create_tool_registry(enable_terminal=False)
        assert "run_command" not in registry
        assert "read_file" in registry

    def test_builtin_timeout_passed_through(self):
        from tessera_agent.tools.registry import create_tool_registry
        registry = create_tool_registry(enable_files=False, command_timeout=5)
        assert registry.list() == ["run_command"]
        assert registry.get("run_command").timeout == 5


# ============================================================
# 2. FUNCTION TOOL
# ============================================================

class TestFunctionTool:
    def test_sync_handler(self):
        from tessera_agent.tools.base import FunctionTool
        tool = FunctionTool("greet", lambda name: f"Hello {name}")
        result = asyncio.run(tool.execute({"name": "Ada"}, ctx()))
        assert result.success
        assert result.output == "Hello Ada"

    def test_async_handler(self):
        from tessera_agent.tools.base import FunctionTool

        async def shout(text):
            await asyncio.sleep(0)
            return text.upper()

        result = asyncio.run(FunctionTool("shout", shout).execute({"text": "hi"}, ctx()))
        assert result.output == "HI"

    def test_none_becomes_done(self):
        from tessera_agent.tools.base import FunctionTool
        result = asyncio.run(FunctionTool("noop", lambda: None).execute({}, ctx()))
        assert result.success
        assert result.output == "Done."

    def test_tool_result_passes_through(self):
        from tessera_agent.models import ToolResult
        from tessera_agent.tools.base import FunctionTool
        result = asyncio.run(FunctionTool("f", lambda: ToolResult.fail("nope")).execute({}, ctx()))
        assert result.success is False
        assert result.error == "nope"

    def test_context_injected(self):
        from tessera_agent.tools.base import FunctionTool
        tool = FunctionTool("where", lambda context: context.workspace_root)
        result = asyncio.run(tool.execute({}, ctx(workspace="/srv/ws")))
        assert result.output == "/srv/ws"

    def test_unknown_arguments_dropped(self):
        from tessera_agent.tools.base import FunctionTool
        tool = FunctionTool("greet", lambda name: f"Hello {name}")
        result = asyncio.run(tool.execute({"name": "Ada", "extra": 1}, ctx()))
        assert result.output == "Hello Ada"

    def test_var_kwargs_receive_everything(self):
        from tessera_agent.tools.base import FunctionTool
        tool = FunctionTool("keys", lambda **kw: ",".join(sorted(kw)))
        result = asyncio.run(tool.execute({"b": 1, "a": 2}, ctx()))
        assert result.output == "a,b"

    def test_non_mapping_input(self):
        from tessera_agent.tools.base import FunctionTool, ToolInputError
        with pytest.raises(ToolInputError):
            asyncio.run(FunctionTool("f", lambda: None).execute(["not", "a", "dict"], ctx()))

    def test_description_from_docstring(self):
        from tessera_agent.tools.base import FunctionTool

        def documented():
            """First line wins.

            Not this one.
            """

        assert FunctionTool("d", documented).description == "First line wins."

    def test_to_schema(self):
        from tessera_agent.tools.base import EMPTY_SCHEMA, FunctionTool
        schema = FunctionTool("f", lambda: None, "Does f").to_schema()
        assert schema == {"name": "f", "description": "Does f", "parameters": EMPTY_SCHEMA}


# ============================================================
# 3. INPUT VALIDATION
# ============================================================

class TestInputValidation:
    SCHEMA = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "mode": {"type": "string", "enum": ["r", "w"]},
            "limit": {"type": "integer", "default": 50},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["path"],
    }

    def tool(self, schema=None):
        from tessera_agent.tools.base import FunctionTool
        return FunctionTool("probe", lambda **kw: kw, input_schema=schema or self.SCHEMA)

    def test_valid_input(self):
        from tessera_agent.tools.schema import validate_tool_input
        data = validate_tool_input(self.tool(), {"path": "a.txt", "mode": "r"})
        assert data == {"path": "a.txt", "mode": "r", "limit": 50}

    def test_missing_required(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        with pytest.raises(ToolInputError, match="path"):
            validate_tool_input(self.tool(), {"mode": "r"})

    def test_enum_violation(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        with pytest.raises(ToolInputError, match="mode"):
            validate_tool_input(self.tool(), {"path": "a", "mode": "x"})

    def test_wrong_type(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        with pytest.raises(ToolInputError, match="limit"):
            validate_tool_input(self.tool(), {"path": "a", "limit": "many"})

    def test_array_items(self):
        from tessera_agent.tools.schema import validate_tool_input
        data = validate_tool_input(self.tool(), {"path": "a", "tags": ["x", "y"]})
        assert data["tags"] == ["x", "y"]

    def test_json_string_payload(self):
        from tessera_agent.tools.schema import validate_tool_input
        assert validate_tool_input(self.tool(), '{"path": "a"}')["path"] == "a"

    def test_invalid_json_payload(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        with pytest.raises(ToolInputError, match="not valid JSON"):
            validate_tool_input(self.tool(), "{oops")

    def test_non_object_payload(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        with pytest.raises(ToolInputError, match="expected an object"):
            validate_tool_input(self.tool(), [1, 2])

    def test_none_payload_is_empty_object(self):
        from tessera_agent.tools.base import EMPTY_SCHEMA
        from tessera_agent.tools.schema import validate_tool_input
        assert validate_tool_input(self.tool(EMPTY_SCHEMA), None) == {}

    def test_extra_keys_allowed_by_default(self):
        from tessera_agent.tools.schema import validate_tool_input
        data = validate_tool_input(self.tool(), {"path": "a", "note": "hi"})
        assert data["note"] == "hi"

    def test_extra_keys_forbidden(self):
        from tessera_agent.tools.base import ToolInputError
        from tessera_agent.tools.schema import validate_tool_input
        schema = dict(self.SCHEMA, additionalProperties=False)
        with pytest.raises(ToolInputError):
            validate_tool_input(self.tool(schema), {"path": "a", "note": "hi"})

    def test_property_names_that_shadow_model_attributes(self):
        from tessera_agent.tools.schema import validate_tool_input
        schema = {
            "type": "object",
            "properties": {"json": {"type": "string"}, "schema": {"type": "string"}},
            "required": ["json"],
        }
        data = validate_tool_input(self.tool(schema), {"json": "x", "schema": "y"})
        assert data == {"json": "x", "schema": "y"}


# ============================================================
# 4. FILE OPERATIONS
# ============================================================

class TestFileOps:
    @pytest.fixture(autouse=True)
    def setup_tmpdir(self, tmp_path):
        self.tmp = tmp_path

    def test_write_and_read(self):
        from tessera_agent.tools.file_ops import read_file, write_file
        result = write_file(str(self.tmp / "a.txt"), "hello")
        assert result.success
        assert "Wrote 5 bytes" in result.output
        assert read_file(str(self.tmp / "a.txt")).output == "hello"

    def test_write_creates_parents(self):
        from tessera_agent.tools.file_ops import write_file
        assert write_file(str(self.tmp / "deep" / "er" / "b.txt"), "x").success
        assert (self.tmp / "deep" / "er" / "b.txt").read_text() == "x"

    def test_relative_paths_use_workspace(self):
        from tessera_agent.tools.file_ops import read_file, write_file
        context = ctx(workspace=str(self.tmp))
        assert write_file("notes/todo.md", "- ship it", context).output == "Wrote 9 bytes to notes/todo.md"
        assert (self.tmp / "notes" / "todo.md").exists()
        assert read_file("notes/todo.md", context).output == "- ship it"

    def test_read_missing(self):
        from tessera_agent.tools.file_ops import read_file
        result = read_file(str(self.tmp / "nope.txt"))
        assert not result.success
        assert "not found" in result.error

    def test_read_directory(self):
        from tessera_agent.tools.file_ops import read_file
        assert not read_file(str(self.tmp)).success

    def test_read_too_large(self):
        from tessera_agent.tools.file_ops import MAX_READ_BYTES, read_file
        big = self.tmp / "big.bin"
        with open(big, "wb") as f:
            f.truncate(MAX_READ_BYTES + 1)
        result = read_file(str(big))
        assert not result.success
        assert "too large" in result.error

    def test_list_directory(self):
        from tessera_agent.tools.file_ops import list_directory
        (self.tmp / "sub").mkdir()
        (self.tmp / "b.txt").write_text("b")
        (self.tmp / "a.txt").write_text("a")
        result = list_directory(str(self.tmp))
        assert result.output.splitlines() == ["[FILE] a.txt", "[FILE] b.txt", "[DIR] sub"]

    def test_list_empty_directory(self):
        from tessera_agent.tools.file_ops import list_directory
        assert list_directory(str(self.tmp)).output == "(empty directory)"

    def test_list_missing_directory(self):
        from tessera_agent.tools.file_ops import list_directory
        assert not list_directory(str(self.tmp / "nope")).success

    def test_search_glob(self):
        from tessera_agent.tools.file_ops import search_files
        (self.tmp / "pkg").mkdir()
        (self.tmp / "pkg" / "core.py").write_text("")
        (self.tmp / "README.md").write_text("")
        result = search_files("*.py", str(self.tmp))
        assert result.output == os.path.join("pkg", "core.py")

    def test_search_substring(self):
        from tessera_agent.tools.file_ops import search_files
        (self.tmp / "test_core.py").write_text("")
        (self.tmp / "core.py").write_text("")
        result = search_files("test_", str(self.tmp))
        assert result.data["matches"] == ["test_core.py"]

    def test_search_skips_hidden_and_node_modules(self):
        from tessera_agent.tools.file_ops import search_files
        for d in (".git", "node_modules", "src"):
            (self.tmp / d).mkdir()
            (self.tmp / d / "index.js").write_text("")
        result = search_files("index.js", str(self.tmp))
        assert result.data["matches"] == [os.path.join("src", "index.js")]

    def test_search_caps_results(self):
        from tessera_agent.tools.file_ops import MAX_SEARCH_RESULTS, search_files
        for i in range(MAX_SEARCH_RESULTS + 10):
            (self.tmp / f"f{i:03}.log").write_text("")
        assert len(search_files("*.log", str(self.tmp)).data["matches"]) == MAX_SEARCH_RESULTS

    def test_search_nothing(self):
        from tessera_agent.tools.file_ops import search_files
        assert search_files("*.rs", str(self.tmp)).output == "No files found"

    def test_search_defaults_to_workspace(self):
        from tessera_agent.tools.file_ops import search_files
        (self.tmp / "match.txt").write_text("")
        assert search_files("match", context=ctx(workspace=str(self.tmp))).output == "match.txt"

    def test_registered_schemas_validate(self):
        from tessera_agent.tools.registry import create_tool_registry
        from tessera_agent.tools.schema import validate_tool_input
        registry = create_tool_registry(enable_terminal=False)
        tool = registry.get("write_file")
        params = validate_tool_input(tool, {"path": "x.txt", "content": "hi"})
        result = asyncio.run(tool.execute(params, ctx(workspace=str(self.tmp))))
        assert result.success
        assert (self.tmp / "x.txt").read_text() == "hi"


# ============================================================
# 5. TERMINAL
# ============================================================

@posix_only
class TestTerminal:
    def test_echo(self):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("echo hello"))
        assert result.success
        assert result.output == "hello"
        assert result.data["exit_code"] == 0

    def test_no_output(self):
        from tessera_agent.tools.terminal import run_command
        assert asyncio.run(run_command("true")).output == "Command completed"

    def test_stderr_on_success(self):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("echo out; echo warn 1>&2"))
        assert result.success
        assert "out" in result.output
        assert "[stderr]" in result.output
        assert "warn" in result.output

    def test_nonzero_exit(self):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("exit 3"))
        assert not result.success
        assert result.error == "Exit code 3"
        assert result.data["exit_code"] == 3

    def test_nonzero_exit_with_stderr(self):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("echo broken 1>&2; exit 1"))
        assert not result.success
        assert result.error == "broken"

    def test_timeout(self):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("sleep 5", timeout=0.2))
        assert not result.success
        assert result.error == "Command timed out after 0.2s"

    def test_cancel(self):
        from tessera_agent.cancel import CancellationToken
        from tessera_agent.tools.terminal import run_command

        async def go():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.1, token.cancel)
            return await run_command("sleep 5", timeout=10, cancel_token=token)

        result = asyncio.run(go())
        assert not result.success
        assert result.error == "Command cancelled"

    def test_missing_cwd(self, tmp_path):
        from tessera_agent.tools.terminal import run_command
        result = asyncio.run(run_command("pwd", cwd=str(tmp_path / "nope")))
        assert not result.success
        assert "not found" in result.error

    def test_long_output_truncated(self):
        from tessera_agent.tools.terminal import MAX_OUTPUT_CHARS, run_command
        result = asyncio.run(run_command("yes x | head -n 20000"))
        assert result.success
        assert "(truncated)" in result.output
        assert len(result.output) < MAX_OUTPUT_CHARS

    def test_tool_runs_in_workspace(self, tmp_path):
        from tessera_agent.tools.terminal import RunCommandTool
        tool = RunCommandTool(timeout=10)
        result = asyncio.run(tool.execute({"command": "pwd"}, ctx(workspace=str(tmp_path))))
        assert Path(result.output).resolve() == tmp_path.resolve()

    def test_tool_relative_cwd(self, tmp_path):
        from tessera_agent.tools.terminal import RunCommandTool
        (tmp_path / "sub").mkdir()
        result = asyncio.run(RunCommandTool().execute(
            {"command": "pwd", "cwd": "sub"}, ctx(workspace=str(tmp_path))))
        assert Path(result.output).resolve() == (tmp_path / "sub").resolve()
