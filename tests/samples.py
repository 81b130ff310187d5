"""Sample artifact text shared by the tests."""

SPEC_OK = """# Feature: Login

## Overview
Users sign in with email and password.

## User Stories
- As a user I can sign in.

## Success Criteria
- Valid credentials open the dashboard.
"""

PLAN_OK = """# Plan

## Tech Stack
Python, Postgres.

## Architecture
Single service.

## Implementation
Build the form first.
"""

TASKS_OK = """# Tasks

## Phase 1: Setup

- [x] T001 Create project
- [x] T002 Add models

## Phase 2: Core

- [ ] T003 Login form
- [ ] T004 Session handling
- [x] T005 Password hashing
"""

ROADMAP_V21 = """# Roadmap

| Phase | Name | Status | Verification Gate |
|-------|------|--------|-------------------|
| 0010 | Setup | ✅ Complete | Builds |
| 0020 | Auth | 🔄 In Progress | Login works |
| 0030 | Billing | ⬜ Not Started | USER GATE: invoices |
"""

ROADMAP_V20 = """# Roadmap

| Phase | Name | Status | Verification Gate |
|-------|------|--------|-------------------|
| 041 | Setup | ✅ Complete | Builds |
| 042 | Auth | 🔄 In Progress | Login works |

### 042 - Auth

Login and sessions.
"""
