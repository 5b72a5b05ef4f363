from datetime import date, datetime

from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    request,
)
from werkzeug.security import generate_password_hash

from lagamhub.auth.routes import json_body, require_login, role_required
from lagamhub.db import (
    fetch_catalog,
    fetch_lagams,
    fetch_tasks,
    fetch_teams,
    fetch_users,
    save_catalog,
    save_lagams,
    save_tasks,
    save_teams,
    save_users,
)
from lagamhub.models import (
    LEAD_ROLES,
    USER_ADMIN_ROLES,
    Role,
    TaskStatus,
    next_numeric_id,
    normalize_lagam,
    normalize_task,
    public_user,
    timestamp_id,
    to_number,
)
from lagamhub.performance import DateFilter, ScopeFilter, aggregate_performance, parse_task_date
from lagamhub.quantities import (
    AllocationError,
    available_quantity,
    effective_produced,
    estimated_lagam_status,
    find_section,
    lagam_progress,
    lagam_status,
    reconcile_lagam,
    section_std_time,
    validate_allocation,
)
from lagamhub.slots import operator_daily_summary, team_average_attainment

main_bp = Blueprint('main', __name__)

leads_required = role_required(LEAD_ROLES)
user_admin_required = role_required(USER_ADMIN_ROLES)


def _unwrap(result):
    """Return the data of a ``(data, error)`` pair or abort with the error."""

    data, error = result
    if error:
        abort(500, description=error)
    return data or []


def _parse_date(val):
    if not val:
        return None
    try:
        return date.fromisoformat(str(val).strip()[:10])
    except ValueError:
        abort(400, description=f'Invalid date: {val}')


def _parse_month(val):
    try:
        return datetime.strptime(str(val).strip()[:7], '%Y-%m').date()
    except ValueError:
        abort(400, description=f'Invalid month: {val}')


def _find(records, key, value):
    return next((r for r in records if str(r.get(key)) == str(value)), None)


def _with_status(lagam, tasks):
    lagam = dict(lagam)
    lagam['status'] = lagam_status(lagam, tasks)
    return lagam


def _email_taken(users, email, exclude_id=None):
    wanted = email.strip().casefold()
    return any(
        str(u.get('email') or '').strip().casefold() == wanted
        for u in users
        if exclude_id is None or str(u.get('id')) != str(exclude_id)
    )


def _allocation_failure(exc: AllocationError):
    current_app.logger.info("Rejected allocation: %s", exc)
    response = jsonify(
        {
            'message': str(exc),
            'size': exc.size,
            'maxAvailable': exc.max_available,
        }
    )
    response.status_code = 400
    return response


# --------------------------------------------------------------------------
# Users
# --------------------------------------------------------------------------


@main_bp.route('/api/users', methods=['GET'])
def list_users():
    require_login()
    return jsonify(_unwrap(fetch_users()))


@main_bp.route('/api/users', methods=['POST'])
@user_admin_required
def create_user():
    payload = json_body()
    name = (payload.get('name') or '').strip()
    email = (payload.get('email') or '').strip() or None
    password = payload.get('password') or ''
    try:
        role = Role.parse(payload.get('role'))
    except ValueError:
        abort(400, description='A valid role is required')

    if not name:
        abort(400, description='Name is required')
    if role is not Role.OPERATOR and not password:
        abort(400, description='Password is required for non-operator roles')
    if role is not Role.OPERATOR and not email:
        abort(400, description='Email is required for non-operator roles')

    users = _unwrap(fetch_users(include_sensitive=True))
    if email and _email_taken(users, email):
        abort(409, description='User with this email already exists')

    user = {
        'id': timestamp_id('USR'),
        'name': name,
        'email': email,
        'employeeId': payload.get('employeeId') or None,
        'role': role.value,
        'avatarUrl': payload.get('avatarUrl') or '',
    }
    if password:
        user['password'] = generate_password_hash(password)

    users.append(user)
    _unwrap(save_users(users))
    return jsonify(public_user(user)), 201


@main_bp.route('/api/users/<user_id>', methods=['GET'])
def get_user(user_id):
    require_login()
    user = _find(_unwrap(fetch_users()), 'id', user_id)
    if user is None:
        abort(404, description='User not found')
    return jsonify(user)


@main_bp.route('/api/users/<user_id>', methods=['PUT'])
@user_admin_required
def update_user(user_id):
    payload = json_body()
    users = _unwrap(fetch_users(include_sensitive=True))
    user = _find(users, 'id', user_id)
    if user is None:
        abort(404, description='User not found')

    email = (payload.get('email') or '').strip()
    if email and _email_taken(users, email, exclude_id=user.get('id')):
        abort(409, description='User with this email already exists')

    for field in ('name', 'email', 'employeeId', 'avatarUrl'):
        if field in payload:
            user[field] = payload[field]
    if 'role' in payload:
        try:
            user['role'] = Role.parse(payload['role']).value
        except ValueError:
            abort(400, description='A valid role is required')
    if payload.get('password'):
        user['password'] = generate_password_hash(payload['password'])

    _unwrap(save_users(users))
    return jsonify(public_user(user))


@main_bp.route('/api/users/<user_id>', methods=['DELETE'])
@user_admin_required
def delete_user(user_id):
    users = _unwrap(fetch_users(include_sensitive=True))
    remaining = [u for u in users if str(u.get('id')) != str(user_id)]
    if len(remaining) == len(users):
        abort(404, description='User not found')

    teams = _unwrap(fetch_teams())
    touched = False
    for team in teams:
        members = team.get('memberIds') or []
        if user_id in members:
            team['memberIds'] = [m for m in members if m != user_id]
            touched = True
    if touched:
        _unwrap(save_teams(teams))

    _unwrap(save_users(remaining))
    return jsonify({'message': 'User deleted successfully'})


@main_bp.route('/api/users/<user_id>/statistics', methods=['GET'])
def user_statistics(user_id):
    require_login()
    if _find(_unwrap(fetch_users()), 'id', user_id) is None:
        abort(404, description='User not found')

    tasks = [t for t in _unwrap(fetch_tasks()) if t.get('teamMemberId') == user_id]
    count = len(tasks)
    return jsonify(
        {
            'totalProduction': sum(effective_produced(t)['total'] for t in tasks),
            'averagePerformance': (
                sum(to_number(t.get('performance')) for t in tasks) / count if count else 0
            ),
            'totalDowntime': sum(to_number(t.get('downtime')) for t in tasks),
            'productionCount': count,
        }
    )


# --------------------------------------------------------------------------
# Teams
# --------------------------------------------------------------------------


def _clean_member_ids(member_ids):
    seen = []
    for member_id in member_ids or []:
        if member_id and member_id not in seen:
            seen.append(member_id)
    return seen


def _release_operators(teams, team_id, member_ids, users):
    """Remove operators joining ``team_id`` from every other team."""

    operator_ids = {
        member_id
        for member_id in member_ids
        if Role.of(_find(users, 'id', member_id)) is Role.OPERATOR
    }
    for team in teams:
        if str(team.get('id')) == str(team_id):
            continue
        members = team.get('memberIds') or []
        if operator_ids.intersection(members):
            team['memberIds'] = [m for m in members if m not in operator_ids]


@main_bp.route('/api/teams', methods=['GET'])
@leads_required
def list_teams():
    return jsonify(_unwrap(fetch_teams()))


@main_bp.route('/api/teams', methods=['POST'])
@leads_required
def create_team():
    payload = json_body()
    name = (payload.get('name') or '').strip()
    if not name:
        abort(400, description='Team name is required')

    teams = _unwrap(fetch_teams())
    users = _unwrap(fetch_users())
    team = {
        'id': next_numeric_id(teams),
        'name': name,
        'memberIds': _clean_member_ids(payload.get('memberIds')),
    }
    _release_operators(teams, team['id'], team['memberIds'], users)
    teams.append(team)
    _unwrap(save_teams(teams))
    return jsonify(team), 201


@main_bp.route('/api/teams/<team_id>', methods=['GET'])
def get_team(team_id):
    require_login()
    team = _find(_unwrap(fetch_teams()), 'id', team_id)
    if team is None:
        abort(404, description='Team not found')

    users = _unwrap(fetch_users())
    operator_ids = [
        member_id
        for member_id in team.get('memberIds') or []
        if Role.of(_find(users, 'id', member_id)) is Role.OPERATOR
    ]
    return jsonify({**team, 'memberIds': operator_ids, 'operatorCount': len(operator_ids)})


@main_bp.route('/api/teams/<team_id>', methods=['PUT'])
@leads_required
def update_team(team_id):
    payload = json_body()
    teams = _unwrap(fetch_teams())
    team = _find(teams, 'id', team_id)
    if team is None:
        abort(404, description='Team not found')

    if 'name' in payload:
        team['name'] = (payload.get('name') or '').strip() or team.get('name')
    if 'memberIds' in payload:
        team['memberIds'] = _clean_member_ids(payload.get('memberIds'))
        _release_operators(teams, team_id, team['memberIds'], _unwrap(fetch_users()))

    _unwrap(save_teams(teams))
    return jsonify(team)


@main_bp.route('/api/teams/<team_id>', methods=['DELETE'])
@leads_required
def delete_team(team_id):
    teams = _unwrap(fetch_teams())
    remaining = [t for t in teams if str(t.get('id')) != str(team_id)]
    if len(remaining) == len(teams):
        abort(404, description='Team not found')
    _unwrap(save_teams(remaining))
    return jsonify({'message': 'Team deleted successfully'})


# --------------------------------------------------------------------------
# Catalog
# --------------------------------------------------------------------------


@main_bp.route('/api/catalog', methods=['GET'])
@leads_required
def get_catalog():
    return jsonify(_unwrap(fetch_catalog()))


@main_bp.route('/api/catalog', methods=['POST'])
@leads_required
def replace_catalog():
    sections = json_body(list)
    for section in sections:
        if not isinstance(section, dict) or not section.get('seccion'):
            abort(400, description='Every catalog section needs a seccion name')
    names = [section['seccion'] for section in sections]
    if len(set(names)) != len(names):
        abort(400, description='Catalog section names must be unique')

    _unwrap(save_catalog(sections))
    return jsonify({'message': 'Catalog updated successfully'})


# --------------------------------------------------------------------------
# Lagams
# --------------------------------------------------------------------------


def _validate_blueprint(lagam):
    names = [s.get('sectionName') for s in lagam['productionBlueprint']]
    if any(not name for name in names):
        abort(400, description='Every blueprint section needs a name')
    if len(set(names)) != len(names):
        abort(400, description='Blueprint section names must be unique within a Lagam')


@main_bp.route('/api/lagam', methods=['GET'])
@leads_required
def list_lagams():
    tasks = _unwrap(fetch_tasks())
    lagams = [_with_status(lagam, tasks) for lagam in _unwrap(fetch_lagams())]
    return jsonify(lagams)


@main_bp.route('/api/lagam', methods=['POST'])
@leads_required
def create_lagam():
    payload = request.get_json(silent=True)

    if isinstance(payload, list):
        lagams = [normalize_lagam(item) for item in payload if isinstance(item, dict)]
        for lagam in lagams:
            _validate_blueprint(lagam)
        _unwrap(save_lagams(lagams))
        return jsonify({'message': 'Lagams updated successfully'})

    if not isinstance(payload, dict):
        abort(400, description='A JSON body is required')

    lagam = normalize_lagam(payload)
    lagam['lagamId'] = timestamp_id('LAG')
    _validate_blueprint(lagam)

    lagams = _unwrap(fetch_lagams())
    lagams.append(lagam)
    _unwrap(save_lagams(lagams))
    current_app.logger.info("Created lagam %s", lagam['lagamId'])
    return jsonify(lagam), 201


@main_bp.route('/api/lagam/<lagam_id>', methods=['GET'])
@leads_required
def get_lagam(lagam_id):
    lagam = _find(_unwrap(fetch_lagams()), 'lagamId', lagam_id)
    if lagam is None:
        abort(404, description='Lagam not found')

    tasks = _unwrap(fetch_tasks())
    lagam = _with_status(lagam, tasks)
    team_info = dict(lagam.get('teamInfo') or {})
    team_id = team_info.get('assignedTeamId')
    if team_id:
        team = _find(_unwrap(fetch_teams()), 'id', team_id)
        if team is None:
            current_app.logger.warning("Lagam %s references missing team %s", lagam_id, team_id)
        else:
            users = _unwrap(fetch_users())
            members = [_find(users, 'id', m) for m in team.get('memberIds') or []]
            members = [m for m in members if m]
            manager = next((m for m in members if Role.of(m) is Role.MANAGER), None)
            team_info['assignedTeamName'] = team.get('name')
            team_info['teamMemberCount'] = len(team.get('memberIds') or [])
            team_info['operatorCount'] = sum(1 for m in members if Role.of(m) is Role.OPERATOR)
            if manager:
                team_info['managerName'] = manager.get('name')
    lagam['teamInfo'] = team_info
    lagam['progress'] = lagam_progress(lagam, tasks)
    return jsonify(lagam)


@main_bp.route('/api/lagam/<lagam_id>', methods=['PUT'])
@leads_required
def update_lagam(lagam_id):
    payload = json_body()
    lagams = _unwrap(fetch_lagams())
    index = next(
        (i for i, lagam in enumerate(lagams) if lagam.get('lagamId') == lagam_id),
        None,
    )
    if index is None:
        abort(404, description='Lagam not found')

    lagam = normalize_lagam({**payload, 'lagamId': lagam_id})
    _validate_blueprint(lagam)
    lagams[index] = lagam
    _unwrap(save_lagams(lagams))
    return jsonify(lagam)


@main_bp.route('/api/lagam/<lagam_id>', methods=['DELETE'])
@leads_required
def delete_lagam(lagam_id):
    lagams = _unwrap(fetch_lagams())
    remaining = [lagam for lagam in lagams if lagam.get('lagamId') != lagam_id]
    if len(remaining) == len(lagams):
        abort(404, description='Lagam not found')

    tasks = _unwrap(fetch_tasks())
    _unwrap(save_tasks([t for t in tasks if t.get('lagamId') != lagam_id]))
    _unwrap(save_lagams(remaining))
    return jsonify({'message': 'Lagam and associated tasks deleted successfully'})


@main_bp.route('/api/lagam-status', methods=['GET'])
def lagam_section_status():
    require_login()
    lagam_id = request.args.get('lagamId')
    if not lagam_id:
        abort(400, description='Lagam ID is required')

    lagam = _find(_unwrap(fetch_lagams()), 'lagamId', lagam_id)
    if lagam is None:
        abort(404, description='Lagam not found')
    return jsonify(reconcile_lagam(lagam, _unwrap(fetch_tasks())))


@main_bp.route('/api/lagam/<lagam_id>/availability', methods=['GET'])
def lagam_availability(lagam_id):
    require_login()
    section_name = request.args.get('sectionName')
    if not section_name:
        abort(400, description='sectionName is required')

    lagam = _find(_unwrap(fetch_lagams()), 'lagamId', lagam_id)
    if lagam is None:
        abort(404, description='Lagam not found')
    if find_section(lagam, section_name) is None:
        abort(404, description='Section not found')

    return jsonify(
        available_quantity(
            lagam,
            section_name,
            _unwrap(fetch_tasks()),
            request.args.get('excludeTaskId') or None,
        )
    )


# --------------------------------------------------------------------------
# Production tasks
# --------------------------------------------------------------------------


@main_bp.route('/api/production-tasks', methods=['GET'])
def list_tasks():
    require_login()
    tasks = _unwrap(fetch_tasks())

    day = _parse_date(request.args.get('date'))
    month = request.args.get('month')
    if day:
        tasks = [t for t in tasks if parse_task_date(t.get('date')) == day]
    elif month:
        window = DateFilter.for_month(_parse_month(month))
        tasks = [t for t in tasks if window.contains(t.get('date'))]

    lagam_id = request.args.get('lagamId')
    if lagam_id:
        tasks = [t for t in tasks if t.get('lagamId') == lagam_id]
    member_id = request.args.get('teamMemberId')
    if member_id:
        tasks = [t for t in tasks if t.get('teamMemberId') == member_id]

    tasks.sort(key=lambda t: parse_task_date(t.get('date')) or date.min, reverse=True)
    return jsonify(tasks)


def _check_status(task):
    valid = {status.value for status in TaskStatus}
    if task.get('status') not in valid:
        abort(400, description=f"Invalid task status: {task.get('status')}")


@main_bp.route('/api/production-tasks', methods=['POST'])
@leads_required
def create_task():
    payload = json_body()
    tasks = _unwrap(fetch_tasks())
    lagam = _find(_unwrap(fetch_lagams()), 'lagamId', payload.get('lagamId'))
    if lagam is None:
        abort(400, description='Selected Lagam could not be found.')
    section = find_section(lagam, payload.get('sectionName'))
    if section is None:
        abort(400, description='Could not find the selected section.')
    if lagam_status(lagam, tasks) == 'Completed':
        abort(400, description='This Lagam is already completed.')

    task = normalize_task({key: value for key, value in payload.items() if key != 'id'})
    _check_status(task)
    if task['quantity'] <= 0:
        abort(400, description='Specify at least one quantity.')

    try:
        validate_allocation(lagam, task['sectionName'], task['sizeQuantities'], tasks)
    except AllocationError as exc:
        return _allocation_failure(exc)

    task['id'] = next_numeric_id(tasks)
    task['estimatedTime'] = task['quantity'] * section_std_time(lagam, task['sectionName'])
    if not task['operationStatus']:
        task['operationStatus'] = [
            task['status'] == TaskStatus.COMPLETED.value
        ] * len(section.get('plannedOperations') or [])

    tasks.append(task)
    _unwrap(save_tasks(tasks))
    return jsonify(task), 201


@main_bp.route('/api/production-tasks/<task_id>', methods=['PUT'])
@leads_required
def update_task(task_id):
    payload = json_body()
    tasks = _unwrap(fetch_tasks())
    index = next((i for i, t in enumerate(tasks) if str(t.get('id')) == str(task_id)), None)
    if index is None:
        abort(404, description='Task not found')

    task = normalize_task({**tasks[index], **payload, 'id': tasks[index].get('id')})
    _check_status(task)

    if {'sizeQuantities', 'sectionName', 'lagamId'} & payload.keys():
        lagam = _find(_unwrap(fetch_lagams()), 'lagamId', task.get('lagamId'))
        if lagam is None:
            abort(400, description='Selected Lagam could not be found.')
        if find_section(lagam, task.get('sectionName')) is None:
            abort(400, description='Could not find the selected section.')
        try:
            validate_allocation(
                lagam,
                task.get('sectionName'),
                task['sizeQuantities'],
                tasks,
                exclude_task_id=task['id'],
            )
        except AllocationError as exc:
            return _allocation_failure(exc)

    tasks[index] = task
    _unwrap(save_tasks(tasks))
    return jsonify(task)


@main_bp.route('/api/production-tasks/<task_id>', methods=['DELETE'])
@leads_required
def delete_task(task_id):
    tasks = _unwrap(fetch_tasks())
    remaining = [t for t in tasks if str(t.get('id')) != str(task_id)]
    if len(remaining) == len(tasks):
        abort(404, description='Task not found')
    _unwrap(save_tasks(remaining))
    return jsonify({'message': 'Task deleted successfully'})


@main_bp.route('/api/control-tasks', methods=['GET'])
@leads_required
def control_tower():
    tasks = _unwrap(fetch_tasks())
    lagams = _unwrap(fetch_lagams())
    today = date.today()

    recent = sorted(
        tasks,
        key=lambda t: parse_task_date(t.get('date')) or date.min,
        reverse=True,
    )[:5]
    return jsonify(
        {
            'kpis': {
                'activeLagams': sum(
                    1 for lagam in lagams if estimated_lagam_status(lagam, tasks) == 'Active'
                ),
                'tasksInProgress': sum(
                    1 for t in tasks if t.get('status') == TaskStatus.IN_PROGRESS.value
                ),
                'tasksCompletedToday': sum(
                    1
                    for t in tasks
                    if t.get('status') == TaskStatus.COMPLETED.value
                    and parse_task_date(t.get('date')) == today
                ),
            },
            'recentActivities': recent,
        }
    )


# --------------------------------------------------------------------------
# Reports
# --------------------------------------------------------------------------


def _report_collections():
    return (
        _unwrap(fetch_tasks()),
        _unwrap(fetch_lagams()),
        _unwrap(fetch_users()),
        _unwrap(fetch_teams()),
    )


@main_bp.route('/api/production-report', methods=['GET'])
@leads_required
def production_report():
    """Operator/team productivity with each operator's contributing tasks."""

    start = _parse_date(request.args.get('startDate'))
    end = _parse_date(request.args.get('endDate'))
    view_mode = request.args.get('viewMode') or 'daily'

    date_filter = None
    if start and end:
        if view_mode == 'monthly':
            date_filter = DateFilter(
                DateFilter.for_month(start).start,
                DateFilter.for_month(end).end,
            )
        elif view_mode == 'range':
            date_filter = DateFilter.for_range(start, end)
        else:
            date_filter = DateFilter.for_day(start)

    tasks, lagams, users, teams = _report_collections()
    payload = aggregate_performance(
        tasks,
        lagams,
        users,
        teams,
        date_filter,
        ScopeFilter(team_id=request.args.get('teamId') or None),
        include_tasks=True,
        descending=(request.args.get('order') or 'desc').lower() != 'asc',
    )
    payload['allTeams'] = teams
    return jsonify(payload)


@main_bp.route('/api/production-analysis', methods=['GET'])
@leads_required
def production_analysis():
    """Operator/team productivity for one day (``YYYY-MM-DD``) or month (``YYYY-MM``)."""

    raw = (request.args.get('date') or '').strip()
    day = None
    date_filter = None
    if len(raw) == 7:
        date_filter = DateFilter.for_month(_parse_month(raw))
    elif raw:
        day = _parse_date(raw)
        date_filter = DateFilter.for_day(day)

    tasks, lagams, users, teams = _report_collections()
    payload = aggregate_performance(tasks, lagams, users, teams, date_filter)

    if day is not None:
        summaries = {
            operator['id']: operator_daily_summary(operator['id'], day, tasks, lagams)
            for operator in payload['operators']
        }
        for team in payload['teams']:
            team['avgDayAttainment'] = team_average_attainment(team, summaries)
    return jsonify(payload)


@main_bp.route('/api/reports/operator/<operator_id>/daily', methods=['GET'])
@leads_required
def operator_daily_report(operator_id):
    day = _parse_date(request.args.get('date')) or date.today()
    if _find(_unwrap(fetch_users()), 'id', operator_id) is None:
        abort(404, description='User not found')
    summary = operator_daily_summary(
        operator_id,
        day,
        _unwrap(fetch_tasks()),
        _unwrap(fetch_lagams()),
    )
    return jsonify(summary)
