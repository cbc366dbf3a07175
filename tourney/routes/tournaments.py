"""Tournament lifecycle routes."""
from flask import Blueprint, request, jsonify
from tourney.services import tournaments as tournament_service
from tourney.services.notifications import recent_notifications

tournaments_bp = Blueprint('tournaments', __name__)

_MAX_LIMIT = 100
_MIN_LIMIT = 1


@tournaments_bp.route('', methods=['GET'])
def get_tournaments():
    status = request.args.get('status')
    limit = request.args.get('limit', 25, type=int)
    limit = max(_MIN_LIMIT, min(limit or 25, _MAX_LIMIT))
    tournaments = tournament_service.list_tournaments(status=status, limit=limit)
    return jsonify({
        'tournaments': [
            tournament.to_dict(include_participants=False)
            for tournament in tournaments
        ],
    })


@tournaments_bp.route('', methods=['POST'])
def create_tournament():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    participant_ids = data.get('participant_ids')
    if not isinstance(participant_ids, list):
        return jsonify({'error': 'participant_ids must be a list'}), 400

    tournament = tournament_service.create_tournament(
        data.get('name'),
        data.get('format') or data.get('tournament_format'),
        participant_ids,
    )
    return jsonify({
        'tournament': tournament_service.serialize_tournament(tournament, include_bracket=False),
    }), 201


@tournaments_bp.route('/<int:tournament_id>', methods=['GET'])
def get_tournament(tournament_id):
    tournament = tournament_service.get_tournament(tournament_id)
    return jsonify({'tournament': tournament_service.serialize_tournament(tournament)})


@tournaments_bp.route('/<int:tournament_id>/generate', methods=['POST'])
def generate_bracket(tournament_id):
    tournament = tournament_service.generate_bracket(tournament_id)
    return jsonify({
        'message': 'Bracket generated',
        'tournament': tournament_service.serialize_tournament(tournament),
    }), 201


@tournaments_bp.route('/<int:tournament_id>/standings', methods=['GET'])
def get_standings(tournament_id):
    return jsonify(tournament_service.tournament_standings(tournament_id))


@tournaments_bp.route('/<int:tournament_id>/notifications', methods=['GET'])
def get_notifications(tournament_id):
    tournament_service.get_tournament(tournament_id)
    limit = request.args.get('limit', 50, type=int)
    limit = max(_MIN_LIMIT, min(limit or 50, _MAX_LIMIT))
    return jsonify({'notifications': recent_notifications(tournament_id, limit=limit)})
