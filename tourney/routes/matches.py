"""Match detail and result recording routes."""
from flask import Blueprint, request, jsonify
from tourney.services import tournaments as tournament_service

matches_bp = Blueprint('matches', __name__)


def _outcome_payload(outcome):
    payload = {
        'match': outcome['match'],
        'winner_id': outcome['winner_id'],
        'loser_id': outcome['loser_id'],
        'champion_id': outcome['champion_id'],
        'true_final': outcome['true_final'],
        'qualifiers': outcome['qualifiers'],
        'scheduled': outcome['scheduled'],
        'tournament_status': outcome['tournament'].get('status', 'active'),
    }
    rows = outcome['standings']
    if isinstance(rows, dict):
        # Group standings are keyed by group number.
        rows = [
            {'group_number': group_number, 'standings': group_rows}
            for group_number, group_rows in rows.items()
        ]
    payload['standings'] = rows
    return payload


@matches_bp.route('/<match_id>', methods=['GET'])
def get_match(match_id):
    return jsonify({'match': tournament_service.get_match(match_id)})


@matches_bp.route('/<match_id>/result', methods=['POST'])
def record_result(match_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if 'player1_score' not in data or 'player2_score' not in data:
        return jsonify({'error': 'player1_score and player2_score are required'}), 400

    outcome = tournament_service.record_result(
        match_id,
        data.get('player1_score'),
        data.get('player2_score'),
        data.get('sets'),
    )
    return jsonify(_outcome_payload(outcome))
