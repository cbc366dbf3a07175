"""Player rating and head-to-head routes."""
from flask import Blueprint, request, jsonify
from tourney.services import history, ratings

ratings_bp = Blueprint('ratings', __name__)


@ratings_bp.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    limit = request.args.get('limit', 50, type=int)
    return jsonify({'leaderboard': ratings.leaderboard(limit)})


@ratings_bp.route('/head-to-head', methods=['GET'])
def get_head_to_head():
    player1_id = (request.args.get('player1') or '').strip()
    player2_id = (request.args.get('player2') or '').strip()
    if not player1_id or not player2_id:
        return jsonify({'error': 'player1 and player2 are required'}), 400
    matches = history.matches_between(player1_id, player2_id)
    wins = sum(1 for match in matches if match['winner_id'] == player1_id)
    return jsonify({
        'player1_id': player1_id,
        'player2_id': player2_id,
        'player1_wins': wins,
        'player2_wins': sum(1 for match in matches if match['winner_id'] == player2_id),
        'matches': matches,
    })


@ratings_bp.route('/<player_id>', methods=['GET'])
def get_player_rating(player_id):
    return jsonify({'rating': ratings.get_rating(player_id)})
