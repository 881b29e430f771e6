from streamlit.testing.v1 import AppTest

from filters.core import FilterCondition, FilterModel
from filters.ui import reset_editor_widgets


def _editor_app():
    import pandas as pd
    import streamlit as st

    from filters.comparison import ComparisonGroupState
    from filters.core import FilterCondition, FilterModel
    from filters.ui import render_comparison_controls, reset_editor_widgets

    df = pd.DataFrame({"az": [3.0, 4.0], "heating_type": ["Floor", "Radiator"]})
    if "comparison_state" not in st.session_state:
        st.session_state.comparison_state = ComparisonGroupState()

    if st.session_state.get("load_now"):
        st.session_state.load_now = False
        reset_editor_widgets(st.session_state)
        st.session_state.comparison_state = ComparisonGroupState(
            filter_group1=FilterModel([FilterCondition("az", ">", 3.5)])
        )

    render_comparison_controls(df, st.session_state.comparison_state)


def test_loaded_filters_replace_the_edited_ones():
    at = AppTest.from_function(_editor_app)
    at.run()
    at.number_input(key="cmp_g1_n").set_value(1).run()
    at.text_input(key="cmp_g1_0_num").set_value("2").run()
    assert at.session_state["comparison_state"].filter_group1 == FilterModel([FilterCondition("az", ">", 2.0)])

    at.session_state["load_now"] = True
    at.run()

    assert not at.exception
    assert at.session_state["comparison_state"].filter_group1 == FilterModel([FilterCondition("az", ">", 3.5)])
    assert at.text_input(key="cmp_g1_0_num").value == "3.5"


def test_reset_only_touches_editor_keys():
    session_state = {"cmp_g1_n": 2, "cmp_g1_0_var": "az", "cmp_clear2": False, "bar_index": "month"}
    reset_editor_widgets(session_state)
    assert session_state == {"bar_index": "month"}
