"""Streamlit warden console for the hostel allotment API."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("ALLOTMENT_API_URL", "http://127.0.0.1:8000")

st.set_page_config(
    page_title="Hostel Warden Console",
    page_icon="🏠",
    layout="wide",
)

# ==========================================
# API Helper Functions
# ==========================================
def _auth_headers() -> Dict[str, str]:
    token = st.session_state.get("access_token")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _error_detail(response: requests.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or response.reason)


def api_call(method: str, path: str, payload: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Calls the backend with the warden bearer token and reports failures inline."""
    try:
        response = requests.request(
            method,
            f"{API_BASE_URL}{path}",
            json=payload,
            params=params,
            headers=_auth_headers(),
            timeout=10,
        )
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None
    if response.status_code >= 400:
        st.error(f"{response.status_code}: {_error_detail(response)}")
        return None
    return response.json()


def login(email: str, password: str) -> bool:
    result = api_call("POST", "/auth/admin-login", {"email": email, "password": password})
    if not result:
        return False
    st.session_state["access_token"] = result["access_token"]
    st.session_state["admin_name"] = result["user"].get("name") or result["user"]["email"]
    return True


# ==========================================
# UI Page Functions
# ==========================================
def render_login_page() -> None:
    st.header("🔐 Warden Login")
    with st.form("admin_login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login", type="primary")
    if submitted and login(email, password):
        st.rerun()


def render_overview_page() -> None:
    st.header("📊 Overview")
    stats = api_call("GET", "/admin/stats")
    if stats:
        cols = st.columns(5)
        cols[0].metric("Students", stats["total_students"])
        cols[1].metric("Rooms", stats["total_rooms"])
        cols[2].metric("Allotments", stats["total_allotments"])
        cols[3].metric("Blocked", stats["blocked_rooms"])
        cols[4].metric("Open Rooms", stats["available_rooms"])

    st.write("### Vacancy Map")
    vacancy = api_call("GET", "/admin/vacancy-map")
    if vacancy and vacancy["rooms"]:
        df = pd.DataFrame(vacancy["rooms"])
        for floor, floor_df in df.groupby("floor"):
            st.write(f"**Floor {floor}**")
            st.dataframe(
                floor_df[["room_number", "capacity", "occupied", "vacancy_percent", "status"]],
                use_container_width=True,
                hide_index=True,
            )
    else:
        st.info("No rooms configured yet.")

    incidents = api_call("GET", "/admin/incidents")
    if incidents and incidents["incidents"]:
        st.write("### ⚠️ Allotment Incidents")
        st.dataframe(pd.DataFrame(incidents["incidents"]), use_container_width=True)


def render_window_page() -> None:
    st.header("🗓️ Allotment Window")
    listing = api_call("GET", "/admin/window")
    if listing:
        active = listing.get("active")
        if active:
            st.success(f"Open: {active['title']} until {active['close_at']}")
        else:
            st.warning("No allotment window is open right now.")
        if listing["windows"]:
            st.dataframe(pd.DataFrame(listing["windows"]), use_container_width=True)

    st.write("### Schedule a Window")
    today = datetime.date.today()
    with st.form("create_window"):
        title = st.text_input("Title", "Room change window")
        col1, col2 = st.columns(2)
        with col1:
            open_date = st.date_input("Opens on", today)
            open_time = st.time_input("Opens at", datetime.time(9, 0))
        with col2:
            close_date = st.date_input("Closes on", today + datetime.timedelta(days=1))
            close_time = st.time_input("Closes at", datetime.time(18, 0))
        submitted = st.form_submit_button("Create Window", type="primary")
    if submitted:
        result = api_call(
            "POST",
            "/admin/window",
            {
                "title": title,
                "open_at": datetime.datetime.combine(open_date, open_time).isoformat(),
                "close_at": datetime.datetime.combine(close_date, close_time).isoformat(),
            },
        )
        if result:
            st.success(f"Window '{result['title']}' created.")


def render_rooms_page() -> None:
    st.header("🚪 Rooms")
    rooms = api_call("GET", "/admin/rooms")
    if not rooms:
        return
    rows = [
        {
            "room_id": room["room_id"],
            "room": room["room_number"],
            "floor": room["floor"],
            "occupied": f"{room['occupied']}/{room['capacity']}",
            "status": room["status"],
            "occupants": ", ".join(occupant["name"] for occupant in room["occupants"]),
            "block_reason": room.get("block_reason") or "",
        }
        for room in rooms["rooms"]
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    col1, col2 = st.columns(2)
    with col1:
        st.write("### Block Room")
        block_id = st.number_input("Room ID", min_value=1, value=1, key="block_room_id")
        reason = st.text_input("Reason", "Maintenance")
        if st.button("Block", type="primary"):
            if api_call("POST", "/admin/block-room", {"room_id": int(block_id), "reason": reason}):
                st.success("Room blocked.")
    with col2:
        st.write("### Unblock Room")
        unblock_id = st.number_input("Room ID", min_value=1, value=1, key="unblock_room_id")
        if st.button("Unblock"):
            if api_call("POST", "/admin/unblock-room", {"room_id": int(unblock_id)}):
                st.success("Room unblocked.")


def render_students_page() -> None:
    st.header("🎓 Students & Overrides")
    search = st.text_input("Search by name, email or branch")
    students = api_call("GET", "/admin/students", params={"search": search} if search else None)
    if students and students["students"]:
        st.dataframe(pd.DataFrame(students["students"]), use_container_width=True, hide_index=True)

    allotments = api_call("GET", "/admin/allotments")
    if allotments and allotments["allotments"]:
        st.write("### Current Allotments")
        st.dataframe(pd.DataFrame(allotments["allotments"]), use_container_width=True, hide_index=True)

    col1, col2 = st.columns(2)
    with col1:
        st.write("### Assign")
        student_id = st.text_input("Student ID", key="assign_student")
        room_id = st.number_input("Room ID", min_value=1, value=1, key="assign_room")
        if st.button("Assign", type="primary"):
            result = api_call("POST", "/admin/assign", {"student_id": student_id, "room_id": int(room_id)})
            if result:
                st.success(result["message"])
    with col2:
        st.write("### Unassign")
        target = st.text_input("Student ID", key="unassign_student")
        if st.button("Unassign"):
            result = api_call("POST", "/admin/unassign", {"student_id": target})
            if result:
                st.success(result["message"])


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Hostel Warden Console")
    st.sidebar.markdown("---")

    if "access_token" not in st.session_state:
        render_login_page()
        return

    page = st.sidebar.radio(
        "Navigation",
        ["Overview", "Allotment Window", "Rooms", "Students"],
    )

    st.sidebar.markdown("---")
    st.sidebar.caption(f"Signed in as {st.session_state.get('admin_name', 'warden')}")
    if st.sidebar.button("Logout"):
        api_call("POST", "/auth/logout")
        st.session_state.pop("access_token", None)
        st.rerun()

    if page == "Overview":
        render_overview_page()
    elif page == "Allotment Window":
        render_window_page()
    elif page == "Rooms":
        render_rooms_page()
    elif page == "Students":
        render_students_page()

if __name__ == "__main__":
    main()
