"""
report.py

This module generates a PDF report for one NFL Playoff Pool room.
It includes:
  - The ranked leaderboard (shared positions merged into one cell), with
    potential and best case points for every player.
  - A per-player section with correct picks per round, players grouped by
    score (a horizontal separator between groups).
  - Several visual sections:
      * A line chart showing "Player Points".
      * A bar chart of the most picked Super Bowl champions.
      * An upsets table listing every decided game won by the lower seed.
Each visual is grouped with its title so that they remain on the same page.
"""

import datetime
from io import BytesIO
import pandas as pd
import plotly.graph_objects as go

from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Image, PageBreak,
    HRFlowable, KeepTogether, Table, TableStyle
)
from reportlab.lib.pagesizes import LETTER
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet

from config import logger
from bracket import build_bracket, seed_of
from constants import ROUND_ORDER, SUPER_BOWL_SLOT
from leaderboard import build_leaderboard, positions
from scoring import best_case_points, score_breakdown

TABLE_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
    ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
    ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
    ('GRID', (0, 0), (-1, -1), 1, colors.black)
]


def leaderboard_rows(registry, pick_sets, results, actual_tiebreaker=None, usernames=None, live_games=None):
    """
    Builds the rows of the leaderboard table.

    The real bracket (results as picks, live pairings first) tells which
    teams are already out, so best case points only count live picks.

    Returns:
        list[dict]: rank, player, points, potential, best_case, tiebreaker; best first.
    """
    actual_matchups = build_bracket(registry, results, live_games, results)
    ranked = build_leaderboard(pick_sets, results, actual_tiebreaker, usernames)
    picks_by_user = {p.user_id: p.picks for p in pick_sets}
    rows = []
    for position, entry in positions(ranked, actual_tiebreaker):
        best = best_case_points(picks_by_user.get(entry.user_id), results, actual_matchups)
        rows.append({
            "rank": position,
            "user_id": entry.user_id,
            "player": entry.username or entry.user_id,
            "points": entry.points,
            "potential": best - entry.points,
            "best_case": best,
            "tiebreaker": entry.tiebreaker_value,
        })
    return rows


def rank_span_commands(table_data):
    """SPAN commands merging consecutive equal ranks in column 0 (row 0 is the header)."""
    span_commands = []
    row_idx = 1
    while row_idx < len(table_data):
        current_value = table_data[row_idx][0]
        start_idx = end_idx = row_idx
        while end_idx + 1 < len(table_data) and table_data[end_idx + 1][0] == current_value:
            end_idx += 1
        if end_idx > start_idx:
            span_commands.append(("SPAN", (0, start_idx), (0, end_idx)))
        row_idx = end_idx + 1
    return span_commands


def find_upsets(registry, actual_matchups):
    """Decided games won by the numerically higher seed, biggest differential first."""
    upsets = []
    for matchup in actual_matchups:
        if not matchup.actual_winner or not matchup.is_resolved:
            continue
        winner = matchup.team_for(matchup.actual_winner)
        if winner is None:
            continue
        loser = matchup.team2 if winner is matchup.team1 else matchup.team1
        winner_seed, loser_seed = seed_of(winner, registry), seed_of(loser, registry)
        if winner_seed > loser_seed:
            upsets.append({
                'round': matchup.round,
                'winner': f"({winner_seed}) {winner.abbreviation or winner.id}",
                'loser': f"({loser_seed}) {loser.abbreviation or loser.id}",
                'differential': winner_seed - loser_seed
            })
    return sorted(upsets, key=lambda x: x['differential'], reverse=True)


def champion_pick_counts(registry, pick_sets):
    """DataFrame of team -> number of submitted brackets picking it to win the Super Bowl."""
    rows = []
    for pick_set in pick_sets:
        if not pick_set.submitted:
            continue
        team_id = pick_set.picks.get(SUPER_BOWL_SLOT)
        if not team_id:
            continue
        team = registry.resolve(team_id)
        rows.append({"team": team.abbreviation if team else team_id, "user_id": pick_set.user_id})
    df = pd.DataFrame(rows, columns=["team", "user_id"])
    if df.empty:
        return pd.DataFrame(columns=["team", "pick_count"])
    counts = df.groupby('team')['user_id'].nunique().reset_index().rename(columns={'user_id': 'pick_count'})
    return counts.sort_values(by=['pick_count', 'team'], ascending=[False, True])


def generate_report(output, room_id, registry, pick_sets, results, actual_tiebreaker=None,
                    usernames=None, live_games=None):
    """
    Generates the PDF report for a room.

    Args:
        output (str | file): Output filename or a writable binary buffer.
        room_id (str): The room being reported.
        registry (TeamRegistry): The seeded field.
        pick_sets (list[PickSet]): The room's pick sets; only submitted ones are reported.
        results (dict): The room's results map.
        actual_tiebreaker (int): Combined Super Bowl score, if final.
        usernames (dict): Optional user_id -> display name.
        live_games (list[LiveGame]): Latest live feed snapshot.

    Returns:
        bool: True when the PDF was written.
    """
    if not output:
        timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        output = f"NFL_Playoff_Pool_{room_id}_{timestamp}.pdf"

    # Use narrow margins: 0.5 inch (36 points)
    doc = SimpleDocTemplate(output, pagesize=LETTER,
                            leftMargin=36, rightMargin=36,
                            topMargin=36, bottomMargin=36)
    story = []
    styles = getSampleStyleSheet()

    try:
        actual_matchups = build_bracket(registry, results, live_games, results)
        rows = leaderboard_rows(registry, pick_sets, results, actual_tiebreaker, usernames, live_games)
        decided = sum(1 for m in actual_matchups if m.actual_winner)

        story.append(Paragraph(f"Playoff Pool Leaderboard: {room_id}", styles['Title']))
        subtitle = f"{decided} of {len(actual_matchups)} games decided"
        if actual_tiebreaker is not None:
            subtitle += f" - Super Bowl combined score: {actual_tiebreaker}"
        story.append(Paragraph(f'<para align="center"><font size="8" color="grey">{subtitle}</font></para>',
                               styles['Normal']))
        story.append(Spacer(1, 12))

        # ---------------- Leaderboard Table ----------------
        table_data = [['Rank', 'Player', 'Points', 'Potential Points', 'Best Case Score', 'Tiebreaker']]
        for row in rows:
            tiebreaker = "-" if row['tiebreaker'] is None else str(row['tiebreaker'])
            table_data.append([str(row['rank']), row['player'], str(row['points']),
                               str(row['potential']), str(row['best_case']), tiebreaker])
        leaderboard_table = Table(table_data, hAlign='CENTER')
        leaderboard_table.setStyle(TableStyle(TABLE_STYLE + rank_span_commands(table_data)))
        story.append(leaderboard_table)
        story.append(PageBreak())

        # ---------------- Player Sections ----------------
        picks_by_user = {p.user_id: p.picks for p in pick_sets}
        previous_points = None
        for row in rows:
            if previous_points is not None and row['points'] != previous_points:
                story.append(HRFlowable(width="100%", thickness=1, color=colors.black))
                story.append(Spacer(1, 6))
            player_flowables = [Paragraph(f"{row['player']} - <b>Points:</b> {row['points']}", styles['Heading3'])]
            breakdown = score_breakdown(picks_by_user.get(row['user_id']), results)
            for round_name in ROUND_ORDER:
                stats = breakdown[round_name]
                player_flowables.append(Paragraph(
                    f"<b>{round_name}:</b> {stats['correct']} of {stats['decided']} decided correct "
                    f"({stats['points']} pts)", styles['Normal']))
            champion = registry.resolve(picks_by_user.get(row['user_id'], {}).get(SUPER_BOWL_SLOT))
            if champion is not None:
                player_flowables.append(Paragraph(
                    f"<b>Champion pick:</b> {champion.city} {champion.name}".strip(), styles['Normal']))
            story.append(KeepTogether(player_flowables))
            story.append(Spacer(1, 12))
            previous_points = row['points']

        story.append(PageBreak())

        # ---------------- Visuals Section ----------------
        visuals = []

        # -- Player Points Line Chart --
        line_img = None
        if rows:
            points_df = pd.DataFrame(rows)[['player', 'points']]
            fig_line = go.Figure(
                data=[go.Scatter(x=points_df['player'], y=points_df['points'], mode="lines+markers")],
                layout=dict(template="plotly_white")
            )
            fig_line.update_layout(
                title="",
                xaxis_title="Player",
                yaxis_title="Points",
                xaxis_tickangle=-45,
                width=800,
                margin=dict(l=40, r=40, t=40, b=150),
                xaxis=dict(tickfont=dict(size=10))
            )
            line_img = fig_to_image(fig_line)
        pp_group = [Paragraph('<para align="center"><b>Player Points</b></para>', styles['Heading2'])]
        if line_img:
            pp_group.append(Image(BytesIO(line_img), width=500, height=300))
        visuals.append(KeepTogether(pp_group))
        visuals.append(Spacer(1, 12))

        # -- Most Picked Super Bowl Champions --
        champions_df = champion_pick_counts(registry, pick_sets)
        champion_img = None
        if not champions_df.empty:
            fig_champions = go.Figure(
                data=[go.Bar(x=champions_df['team'], y=champions_df['pick_count'])],
                layout=dict(template="plotly_white")
            )
            fig_champions.update_layout(title="", xaxis_title="Team", yaxis_title="Number of Picks")
            champion_img = fig_to_image(fig_champions)
        champion_group = [Paragraph('<para align="center"><b>Most Picked Super Bowl Champions</b></para>',
                                    styles['Heading2'])]
        if champion_img:
            champion_group.append(Image(BytesIO(champion_img), width=400, height=300))
        visuals.append(KeepTogether(champion_group))
        visuals.append(Spacer(1, 12))

        # -- Upsets Table --
        upsets = find_upsets(registry, actual_matchups)
        upset_group = [Paragraph('<para align="center"><b>Games with Biggest Upsets</b></para>', styles['Heading2'])]
        if upsets:
            upset_data = [['Round', 'Winner', 'Loser', 'Seed Differential']]
            for up in upsets:
                upset_data.append([up['round'], up['winner'], up['loser'], up['differential']])
            upset_table = Table(upset_data)
            upset_table.setStyle(TableStyle(TABLE_STYLE))
            upset_group.append(upset_table)
        visuals.append(KeepTogether(upset_group))

        for group in visuals:
            story.append(group)

        # Build the PDF with page numbers.
        doc.build(story, onFirstPage=add_page_number, onLaterPages=add_page_number)
        logger.info(f"PDF report for room {room_id} written.")
        return True
    except Exception as e:
        logger.error(f"Error generating PDF: {e}")
        return False


def fig_to_image(fig):
    """
    Converts a Plotly figure to a PNG image in memory.

    Args:
        fig (plotly.graph_objects.Figure): The figure to convert.

    Returns:
        bytes: The PNG image as bytes, or None if an error occurs (e.g. no image engine installed).
    """
    try:
        return fig.to_image(format="png")
    except Exception as e:
        logger.error("Error converting Plotly figure to PNG: %s", e)
        return None


def add_page_number(canvas, doc):
    """
    Draws the page number at the bottom center of each page.
    """
    page_num = canvas.getPageNumber()
    canvas.drawCentredString(LETTER[0] / 2.0, 20, f"Page {page_num}")
