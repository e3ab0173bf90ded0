import pytest

from retroemu.pascal.engine import PascalEngine
from retroemu.samples import SampleLibrary


def _run(engine, source):
    compiled = engine.compile(source)
    assert compiled.success, compiled.errors
    return engine.execute(compiled)


def _body(statements, declarations="var i, n: integer; r: real; s: string; c: char; b: boolean;"):
    return f"program T;\n{declarations}\nbegin\n{statements}\nend."


def test_hello_output(pascal):
    result = _run(pascal, "program T; begin writeln('hi'); end.")
    assert result.success
    assert result.output == ["hi"]
    assert result.statements_executed == 1
    assert result.error is None


def test_write_appends_and_writeln_completes_line(pascal):
    result = _run(pascal, _body("write('a'); write('b'); writeln('c'); writeln; write('tail')"))
    assert result.output == ["abc", "", "tail"]


@pytest.mark.parametrize(
    ("expr", "expected"),
    [
        ("1 + 2 * 3", "7"),
        ("(1 + 2) * 3", "9"),
        ("7 / 2", " 3.5000000000E+00"),
        ("-1.5", "-1.5000000000E+00"),
        ("7 / 2:0:2", "3.50"),
        ("42:5", "   42"),
        ("'ab':4", "  ab"),
        ("1 < 2", "TRUE"),
        ("not true", "FALSE"),
        ("(1 = 1) and (2 > 3)", "FALSE"),
        ("'abc' + 'def'", "abcdef"),
        ("17 div 5", "3"),
        ("17 mod 5", "2"),
        ("sqr(3)", "9"),
        ("abs(-4)", "4"),
        ("round(2.5)", "3"),
        ("round(-2.5)", "-3"),
        ("trunc(-2.7)", "-2"),
        ("sqrt(16.0):0:1", "4.0"),
        ("ord('A')", "65"),
        ("chr(66)", "B"),
        ("length('hello')", "5"),
        ("odd(3)", "TRUE"),
        ("upcase('q')", "Q"),
    ],
)
def test_expression_output(pascal, expr, expected):
    result = _run(pascal, _body(f"writeln({expr})"))
    assert result.output == [expected]


def test_div_and_mod_truncate_toward_zero(pascal):
    result = _run(pascal, _body("n := -7; writeln(n div 2, ' ', n mod 2)"))
    assert result.output == ["-3 -1"]


def test_integer_promotes_to_real(pascal):
    result = _run(pascal, _body("r := 2; r := r + 1; writeln(r:0:1)"))
    assert result.output == ["3.0"]
    assert result.variables["r"] == 3.0


def test_division_by_zero_stops_execution(pascal):
    source = "program T;\nvar n: integer;\nbegin\nwriteln('before');\nn := 1 div 0;\nwriteln('after')\nend."
    result = _run(pascal, source)
    assert not result.success
    assert result.error == "Runtime error 200 at line 5: Division by zero"
    assert result.output == ["before", "Runtime error 200 at line 5: Division by zero"]


def test_real_division_by_zero(pascal):
    result = _run(pascal, _body("r := 1 / 0"))
    assert result.error == "Runtime error 200 at line 4: Division by zero"


def test_assigning_real_to_integer_is_runtime_error(pascal):
    result = _run(pascal, _body("n := 7 / 2"))
    assert not result.success
    assert result.error.startswith("Runtime error 225 at line 4: Type mismatch")


def test_pending_write_is_flushed_before_error(pascal):
    result = _run(pascal, _body("write('partial'); n := 1 div 0"))
    assert result.output[0] == "partial"
    assert result.output[-1].startswith("Runtime error 200")


def test_infinite_while_hits_step_limit(pascal):
    result = _run(pascal, "program L; begin while true do ; end.")
    assert not result.success
    assert result.step_limit_reached
    assert result.statements_executed == 10000
    assert result.output[-1] == "Execution halted: step limit of 10000 statements reached"


def test_step_limit_is_configurable():
    result = _run(PascalEngine(step_limit=50), "program L; var n: integer; begin repeat n := n + 1 until false end.")
    assert result.step_limit_reached
    assert result.statements_executed == 50


def test_for_loops(pascal):
    result = _run(pascal, _body("n := 0; for i := 1 to 10 do n := n + i; writeln(n); for i := 3 downto 1 do write(i)"))
    assert result.output == ["55", "321"]


def test_for_loop_with_empty_range(pascal):
    result = _run(pascal, _body("n := 0; for i := 5 to 1 do n := n + 1; writeln(n)"))
    assert result.output == ["0"]


def test_repeat_runs_at_least_once(pascal):
    result = _run(pascal, _body("n := 10; repeat n := n + 1 until n > 5; writeln(n)"))
    assert result.output == ["11"]


def test_while_and_if(pascal):
    source = _body("n := 0; while n < 3 do begin n := n + 1; if odd(n) then write('o') else write('e') end; writeln")
    assert _run(pascal, source).output == ["oeo"]


@pytest.mark.parametrize(("value", "expected"), [("'a'", "A"), ("'c'", "B or C"), ("'z'", "other")])
def test_case_with_else(pascal, value, expected):
    source = _body(f"c := {value}; case c of 'a': writeln('A'); 'b', 'c': writeln('B or C'); else writeln('other') end")
    assert _run(pascal, source).output == [expected]


def test_readln_uses_type_defaults_and_warns(pascal):
    source = "program T;\nvar n: integer; s: string;\nbegin\nn := 5; s := 'x';\nreadln(n, s);\nwriteln(n, '[', s, ']')\nend."
    result = _run(pascal, source)
    assert result.success
    assert result.output == ["0[]"]
    assert result.warnings == [
        "Line 5: readln has no input, 'n' set to 0",
        "Line 5: readln has no input, 's' set to ''",
    ]


def test_non_boolean_condition_is_runtime_error(pascal):
    result = _run(pascal, _body("if 1 then writeln('x')"))
    assert result.error == "Runtime error 225 at line 4: Boolean expected but integer found"


def test_constants_are_usable(pascal):
    result = _run(pascal, "program K; const Base = 40; begin writeln(Base + 2) end.")
    assert result.output == ["42"]


def test_final_variables(pascal):
    result = _run(pascal, _body("n := 3; b := true; s := 'ok'"))
    assert result.variables["n"] == 3
    assert result.variables["b"] is True
    assert result.variables["s"] == "ok"
    assert result.variables["i"] == 0


def test_execute_without_successful_compile_fails(pascal):
    failed = pascal.compile("program T; begin writeln('hi');")
    result = pascal.execute(failed)
    assert not result.success
    assert result.output == ["Program was not compiled successfully"]
    assert not pascal.execute(None).success


def test_each_execute_starts_fresh(pascal):
    compiled = pascal.compile(_body("n := n + 1; writeln(n)"))
    assert pascal.execute(compiled).output == ["1"]
    assert pascal.execute(compiled).output == ["1"]


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("hello", ["Hello, World!", "Welcome to Turbo Pascal!"]),
        ("factorial", ["Enter a number: ", "Factorial of 0 is 1"]),
    ],
)
def test_bundled_samples_run(pascal, name, expected):
    source = SampleLibrary().get("pascal", name).source
    assert _run(pascal, source).output == expected


def test_calculator_sample_falls_through_to_else(pascal):
    source = SampleLibrary().get("pascal", "calculator").source
    result = _run(pascal, source)
    assert result.success
    assert result.output[-1] == "Invalid operation"
    assert len(result.warnings) == 3


def test_display_reports(pascal):
    compiled = pascal.compile(_body("writeln('x')"))
    text = pascal.display_results(compiled)
    assert "Turbo Pascal 7.0" in text
    assert "Compilation successful." in text
    assert "  n: integer" in text

    run_text = pascal.display_execution_results(pascal.execute(compiled))
    assert "Program Execution Results" in run_text
    assert "  x" in run_text
    assert "Statements executed: 1" in run_text

    failed = pascal.display_results(pascal.compile("program T; begin"))
    assert "Compilation failed with errors:" in failed


@pytest.mark.parametrize(
    ("statements", "error"),
    [
        ("n := 2147483647; n := n + 1", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("n := 65536 * 65536", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("n := 1; for i := 1 to 40 do n := n * 3", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("writeln(-2147483647 - 2)", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("n := 2147483647; writeln(abs(-n - 1))", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("n := trunc(1e300)", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("n := round(-1e300)", "Runtime error 215 at line 4: Arithmetic overflow"),
        ("r := 1e308 * 10", "Runtime error 205 at line 4: Floating point overflow"),
        ("writeln(1e300 * 1e300)", "Runtime error 205 at line 4: Floating point overflow"),
        ("r := sqr(1e200)", "Runtime error 205 at line 4: Floating point overflow"),
        ("r := 1e300; n := trunc(r * r * 0)", "Runtime error 205 at line 4: Floating point overflow"),
    ],
)
def test_numeric_overflow_is_runtime_error(pascal, statements, error):
    result = _run(pascal, _body(statements))
    assert not result.success
    assert result.error == error
    assert result.output[-1] == error


def test_deep_expression_reports_stack_overflow(pascal):
    result = _run(pascal, _body("writeln(1" + " + 1" * 3000 + ")"))
    assert not result.success
    assert result.error == "Runtime error 202 at line 4: Stack overflow error"


def test_string_concatenation_is_truncated(pascal):
    result = _run(pascal, _body("s := 'x'; for i := 1 to 9 do s := s + s; writeln(length(s))"))
    assert result.success
    assert result.output == ["255"]


def test_field_width_is_capped(pascal):
    result = _run(pascal, _body("writeln(1:100000); writeln(1.5:1:100000)"))
    assert result.success
    assert len(result.output[0]) == 255
    assert result.output[1] == "1." + "5" + "0" * 254


BREAKPOINT_SOURCE = "program B;\nvar n: integer;\nbegin\nwriteln('one');\nn := 5;\nwriteln('two')\nend."


def test_breakpoint_pauses_only_in_debug_mode(pascal):
    assert pascal.set_breakpoint(5) == "Breakpoint set at line 5"
    compiled = pascal.compile(BREAKPOINT_SOURCE)

    result = pascal.execute(compiled)
    assert result.output == ["one", "two"]
    assert result.breakpoint_line is None

    assert pascal.enable_debug() == "Debug mode enabled"
    result = pascal.execute(compiled)
    assert result.success
    assert result.output == ["one", "Breakpoint at line 5"]
    assert result.breakpoint_line == 5
    assert result.variables["n"] == 0


def test_cleared_breakpoint_no_longer_pauses(pascal):
    pascal.set_breakpoint(4)
    pascal.enable_debug()
    compiled = pascal.compile(BREAKPOINT_SOURCE)
    assert pascal.execute(compiled).output == ["Breakpoint at line 4"]

    assert pascal.clear_breakpoint(4) == "Breakpoint cleared at line 4"
    assert pascal.execute(compiled).output == ["one", "two"]
    pascal.set_breakpoint(6)
    assert pascal.disable_debug() == "Debug mode disabled"
    assert pascal.execute(compiled).output == ["one", "two"]
