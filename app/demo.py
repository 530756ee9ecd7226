"""
Reverse Minesweeper - Interactive Demo

The engine chooses which cell to reveal; you answer with what the cell holds.

Run with: streamlit run app/demo.py
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import streamlit as st
from typing import List, Optional, Tuple

from reverse_sweeper import GameMemory, GameSession, JsonFileStore
from reverse_sweeper.analysis import describe_turn, plot_probability_map, summarize_memory
from reverse_sweeper.config import BOARD_SIZES, VALIDATION_MODES

MEMORY_PATH = Path(__file__).parent.parent / ".reverse_sweeper_memory.json"

ANSWERS: List[str] = ["0", "1", "2", "3", "4", "5", "6", "7", "8", "M"]


def render_board_html(
    session: GameSession,
    highlight_cell: Optional[Tuple[int, int]] = None,
) -> str:
    """Render the session board as HTML with styling."""
    rows, cols = session.size.rows, session.size.cols

    # Scale cell size based on board width
    if cols >= 16:
        cell_size = 20
        font_size = "13px"
    else:
        cell_size = 26
        font_size = "15px"

    colors = {
        "0": "#cccccc",
        "1": "#0000ff",
        "2": "#008000",
        "3": "#ff0000",
        "4": "#000080",
        "5": "#800000",
        "6": "#008080",
        "7": "#000000",
        "8": "#808080",
    }

    html = '<div style="font-family: monospace; line-height: 1.2;">'
    html += '<table style="border-collapse: collapse; margin: auto;">'

    for r in range(rows):
        html += "<tr>"
        for c in range(cols):
            value = session.revealed.get((r, c))

            if value == "M":
                cell = "M"  # Mine revealed by an answer (caused loss)
                bg = "#ff0000"
                text_color = "#ffffff"
            elif value is not None:
                cell = value
                bg = "#f0f0f0" if cell == "0" else "#ffffff"
                text_color = colors.get(cell, "#000000")
            elif (r, c) in session.flags:
                cell = "F"  # Flagged by the engine
                bg = "#ffa500"
                text_color = "#ffffff"
            else:
                cell = "."
                bg = "#c0c0c0"
                text_color = "#666666"

            # Highlight the pending cell
            border = "3px solid #ff0000" if (r, c) == highlight_cell else "1px solid #999"
            display = cell if cell != "0" else " "

            html += f'''<td style="
                width: {cell_size}px; height: {cell_size}px;
                text-align: center;
                background: {bg};
                border: {border};
                color: {text_color};
                font-weight: bold;
                font-size: {font_size};
            ">{display}</td>'''
        html += "</tr>"

    html += "</table></div>"
    return html


def new_session(rows: int, cols: int, validation_mode: str) -> GameSession:
    return GameSession((rows, cols), memory=st.session_state.memory, validation_mode=validation_mode)


def main():
    st.set_page_config(
        page_title="Reverse Minesweeper",
        page_icon="💣",
        layout="wide",
    )

    st.title("Reverse Minesweeper")
    st.markdown("""
    The engine picks a cell to reveal and flags the mines it can prove.
    You tell it what the chosen cell holds: a number 0-8, or **M** for a mine.
    """)

    # Sidebar configuration
    st.sidebar.header("Game Configuration")

    size_names = [name for name, _, _ in BOARD_SIZES]
    size_name = st.sidebar.selectbox("Board Size", size_names, index=1)
    _, rows, cols = BOARD_SIZES[size_names.index(size_name)]

    validation_mode = st.sidebar.selectbox(
        "Answer Validation",
        list(VALIDATION_MODES),
        help="warn: accept inconsistent answers with a warning. "
             "block: reject them. ignore: do not check answers.",
    )

    # Initialize session state
    if "memory" not in st.session_state:
        st.session_state.memory = GameMemory(JsonFileStore(str(MEMORY_PATH)))
        st.session_state.session = None
        st.session_state.prev_settings = None
        st.session_state.last_report = None

    if st.sidebar.button("Reset Memory"):
        st.session_state.memory.reset()
        st.session_state.session = None
        st.session_state.prev_settings = None

    # Auto-start a new game when settings change
    current_settings = (rows, cols, validation_mode)
    if st.session_state.session is None or st.session_state.prev_settings != current_settings:
        if st.session_state.session is not None:
            st.session_state.session.abandon()
        st.session_state.session = new_session(rows, cols, validation_mode)
        st.session_state.prev_settings = current_settings
        st.session_state.last_report = None

    session: GameSession = st.session_state.session
    decision = session.next_move()

    if not st.session_state.memory.available:
        st.sidebar.warning("Memory file could not be read; playing without memory. "
                           "Reset Memory to start a new one.")
    if session.last_result is not None:
        st.sidebar.markdown("**Last Turn**")
        st.sidebar.text(describe_turn(session.last_result, st.session_state.memory))

    col1, col2 = st.columns([2, 1])

    with col1:
        st.subheader("Game Board")

        if st.button("New Game", type="primary"):
            session.abandon()
            st.session_state.session = new_session(rows, cols, validation_mode)
            st.session_state.last_report = None
            st.rerun()

        highlight = decision.cell if decision is not None else None
        st.markdown(render_board_html(session, highlight), unsafe_allow_html=True)

        if session.status == "won":
            st.success("Every safe cell is revealed. The engine won!")
        elif session.status == "lost":
            st.error("The engine revealed a mine and lost.")
        elif decision is not None:
            r, c = decision.cell
            st.info(f"**Engine reveals ({r}, {c})** [{decision.tag}]: {decision.rationale}")

            answer_col1, answer_col2 = st.columns([1, 1])
            with answer_col1:
                answer = st.selectbox("Cell content", ANSWERS, key=f"answer_{len(session.history)}")
            with answer_col2:
                if st.button("Submit Answer"):
                    st.session_state.last_report = session.answer(answer)
                    st.rerun()

        report = st.session_state.last_report
        if report is not None and not report.consistent:
            if session.validation_mode == "block":
                st.error(f"Answer rejected: {report.message}")
            else:
                st.warning(f"Inconsistent answer accepted: {report.message}")

        # Board legend
        st.markdown("""
        <div style="font-size: 12px; margin-top: 10px;">
        <b>Legend:</b>
        <span style="background: #c0c0c0; color: #666666; padding: 2px 6px; margin: 0 4px; font-weight: bold;">.</span> Hidden
        <span style="background: #f0f0f0; padding: 2px 6px; margin: 0 4px;">&nbsp;</span> Empty (0)
        <span style="color: #0000ff; font-weight: bold; margin: 0 4px;">1-8</span> Adjacent mines
        <span style="background: #ffa500; color: white; padding: 2px 6px; margin: 0 4px; font-weight: bold;">F</span> Flagged (engine proved)
        <span style="background: #ff0000; color: white; padding: 2px 6px; margin: 0 4px; font-weight: bold;">M</span> Mine (caused loss)
        </div>
        """, unsafe_allow_html=True)

    with col2:
        st.subheader("Engine Statistics")

        result = session.last_result
        if result is not None:
            stats = result.deduction.stats
            inf_data = {
                "Local": (stats.get("inferred_single_count", 0), stats.get("attempted_single_count", 0)),
                "Paired": (stats.get("inferred_paired_count", 0), stats.get("attempted_paired_count", 0)),
                "Enumeration": (
                    stats.get("inferred_bruteforce_count", 0),
                    stats.get("attempted_bruteforce_count", 0),
                ),
            }
            for name, (inferred, attempted) in inf_data.items():
                rate = f"{inferred/attempted*100:.1f}%" if attempted > 0 else "N/A"
                st.text(f"{name}: {inferred} inferred / {attempted} attempted ({rate})")
            st.text(f"Patterns: {stats.get('inferred_pattern_count', 0)} inferred")
            if result.deduction.rolled_back:
                st.warning("Deductions were discarded after a contradiction.")

            if st.checkbox("Show probability map"):
                st.pyplot(plot_probability_map(result, show=False))
        else:
            st.info("Answer the opening move to see the engine's reasoning.")

        st.markdown("---")
        st.markdown("**Memory**")
        summary = summarize_memory(st.session_state.memory)
        st.metric("Games Played", int(summary["games_played"]))
        st.metric("Win Rate", f"{summary['win_rate'] * 100:.1f}%")
        st.text(f"Mines recorded: {int(summary['mines_found'])}")
        st.text(f"Losing sequences: {int(summary['losing_sequences'])}")

        if session.warnings:
            st.markdown("---")
            st.markdown("**Inconsistent Answers**")
            for warning in session.warnings:
                st.text(warning.message)


if __name__ == "__main__":
    main()
