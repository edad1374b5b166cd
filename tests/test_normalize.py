import pytest

from pesession.normalize import blank_attr, normalize_plan_xml, rtrim, strip_element

BEFORE = '<QueryPlan><RelOp NodeId="0">'
AFTER = "</RelOp></QueryPlan>"


def test_strip_element_without_tag_is_identity():
    xml = BEFORE + AFTER
    assert strip_element(xml, "RunTimeInformation") == xml


def test_strip_element_empty_input():
    assert strip_element("", "WaitStats") == ""


@pytest.mark.parametrize(
    "element",
    [
        '<RunTimeInformation a="1"/>',
        "<RunTimeInformation/>",
        "<RunTimeInformation><Thread Id=\"0\"/></RunTimeInformation>",
        '<RunTimeInformation\n  x="2"><A/></RunTimeInformation>',
        "<RunTimeInformation>text</RunTimeInformation>",
    ],
)
def test_strip_element_removes_element(element):
    assert strip_element(BEFORE + element + AFTER, "RunTimeInformation") == BEFORE + AFTER


def test_strip_element_removes_every_occurrence():
    element = "<WaitStats><Wait T=\"x\"/></WaitStats>"
    middle = "<Other/>"
    xml = BEFORE + element + middle + element + AFTER
    assert strip_element(xml, "WaitStats") == BEFORE + middle + AFTER


def test_strip_element_ignores_longer_tag_names():
    xml = BEFORE + '<RunTimeInformationX a="1"/>' + AFTER
    assert strip_element(xml, "RunTimeInformation") == xml


def test_strip_element_keeps_unterminated_open_tag():
    xml = BEFORE + '<QueryTimeStats a="1"'
    assert strip_element(xml, "QueryTimeStats") == xml


def test_strip_element_keeps_element_without_close():
    xml = BEFORE + "<QueryTimeStats><Inner/>"
    assert strip_element(xml, "QueryTimeStats") == xml


def test_strip_element_tag_at_end_of_input_is_kept():
    xml = BEFORE + "<MemoryGrantInfo"
    assert strip_element(xml, "MemoryGrantInfo") == xml


def test_blank_attr_blanks_value():
    name = "StatementId"
    assert blank_attr(f'<Stmt {name}="42" X="1"/>', name) == f'<Stmt {name}="" X="1"/>'


def test_blank_attr_pinned_example():
    assert blank_attr('<S StatementId="7"/>', "StatementId") == '<S StatementId=""/>'


def test_blank_attr_blanks_every_occurrence():
    name = "CompileTime"
    xml = f'<A {name}="1"/>\n<B\t{name}="22"/>'
    assert blank_attr(xml, name) == f'<A {name}=""/>\n<B\t{name}=""/>'


def test_blank_attr_ignores_longer_attribute_names():
    xml = '<Stmt ParentStatementId="3"/>'
    assert blank_attr(xml, "StatementId") == xml


def test_blank_attr_at_start_of_input_is_kept():
    xml = 'StatementId="3"'
    assert blank_attr(xml, "StatementId") == xml


def test_blank_attr_keeps_unterminated_value():
    xml = '<Stmt StatementId="3'
    assert blank_attr(xml, "StatementId") == xml


def test_blank_attr_is_idempotent():
    once = blank_attr('<P ParameterRuntimeValue="(5)" />', "ParameterRuntimeValue")
    assert blank_attr(once, "ParameterRuntimeValue") == once


def test_rtrim_drops_trailing_whitespace():
    assert rtrim("SELECT 1 \t\r\n") == "SELECT 1"


def test_rtrim_keeps_leading_whitespace_and_other_characters():
    assert rtrim("  SELECT 1") == "  SELECT 1"
    assert rtrim("x\v") == "x\v"
    assert rtrim(" \n\t") == ""


def _plan(runtime: str, statement_id: str, relop: str) -> str:
    return (
        "<ShowPlanXML><BatchSequence><Batch><Statements>"
        f'<StmtSimple StatementText="SELECT 1" StatementId="{statement_id}">'
        '<QueryPlan CompileTime="3" CompileCPU="2">'
        f"<QueryTimeStats ElapsedTime=\"{runtime}\"/>"
        f'<RelOp PhysicalOp="{relop}">'
        f'<RunTimeInformation><Thread ActualRows="{runtime}"/></RunTimeInformation>'
        "</RelOp></QueryPlan></StmtSimple></Statements></Batch></BatchSequence>"
        "</ShowPlanXML>"
    )


def test_normalize_collapses_runtime_differences():
    assert normalize_plan_xml(_plan("10", "1", "Scan")) == normalize_plan_xml(
        _plan("99", "2", "Scan")
    )


def test_normalize_keeps_shape_differences():
    a = normalize_plan_xml(_plan("10", "1", "Scan"))
    b = normalize_plan_xml(_plan("10", "1", "Seek"))
    assert (a == b) is False
    assert 'PhysicalOp="Seek"' in b


def test_normalize_removes_runtime_elements_and_values():
    result = normalize_plan_xml(_plan("10", "1", "Scan"))
    assert "RunTimeInformation" not in result
    assert "QueryTimeStats" not in result
    assert 'StatementId=""' in result
    assert 'CompileTime=""' in result
    assert 'CompileCPU=""' in result


def test_normalize_is_idempotent():
    once = normalize_plan_xml(_plan("10", "1", "Scan"))
    assert normalize_plan_xml(once) == once