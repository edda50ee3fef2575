import pytest

from boardsync.models.domain import BoardType


def _names(db, board_id):
    return [lane.name for lane in db.list_lanes(board_id)]


def _positions(db, board_id):
    return [lane.position for lane in db.list_lanes(board_id)]


def test_create_lane_appends_and_inserts_with_shift(db, board_abc) -> None:
    db.create_lane(board_abc.id, "D")
    assert _names(db, board_abc.id) == ["A", "B", "C", "D"]

    db.create_lane(board_abc.id, "Front", position=0)
    assert _names(db, board_abc.id) == ["Front", "A", "B", "C", "D"]
    assert _positions(db, board_abc.id) == [0, 1, 2, 3, 4]


def test_create_lane_clamps_out_of_range_position(db, board_abc) -> None:
    db.create_lane(board_abc.id, "Far", position=99)
    db.create_lane(board_abc.id, "Neg", position=-5)
    assert _names(db, board_abc.id) == ["Neg", "A", "B", "C", "Far"]


def test_create_lane_replays_client_key(db, board_abc) -> None:
    first = db.create_lane(board_abc.id, "Review", client_key="k-1")
    again = db.create_lane(board_abc.id, "Review", client_key="k-1")
    assert again.id == first.id
    assert _names(db, board_abc.id).count("Review") == 1


def test_lane_names_are_unique_per_board_case_insensitive(db, board_abc) -> None:
    with pytest.raises(ValueError):
        db.create_lane(board_abc.id, "a")
    lane_b = db.list_lanes(board_abc.id)[1]
    with pytest.raises(ValueError):
        db.update_lane(lane_b.id, name="C")
    # Renaming to its own name in another case is fine.
    assert db.update_lane(lane_b.id, name="b").name == "b"


def test_lane_mapped_states_must_belong_to_project(db, seeded, board_abc) -> None:
    other = db.create_project("Other")
    foreign = db.create_state(other.id, "Elsewhere")
    with pytest.raises(ValueError):
        db.create_lane(board_abc.id, "Bad", mapped_states=[foreign.id])
    with pytest.raises(ValueError):
        db.create_lane(board_abc.id, "Dup", mapped_states=[seeded.states[0].id, seeded.states[0].id])

    lane = db.create_lane(board_abc.id, "Good", mapped_states=[s.id for s in seeded.states[:2]])
    assert lane.mapped_states == [seeded.states[0].id, seeded.states[1].id]


def test_wip_limit_must_be_positive(db, board_abc) -> None:
    with pytest.raises(ValueError):
        db.create_lane(board_abc.id, "Zero", wip_limit=0)
    lane = db.create_lane(board_abc.id, "Three", wip_limit=3)
    assert lane.wip_limit == 3
    assert db.update_lane(lane.id, wip_limit=None).wip_limit is None


def test_delete_lane_renumbers(db, board_abc) -> None:
    lane_b = db.list_lanes(board_abc.id)[1]
    db.delete_lane(lane_b.id)
    assert _names(db, board_abc.id) == ["A", "C"]
    assert _positions(db, board_abc.id) == [0, 1]
    with pytest.raises(KeyError):
        db.delete_lane(lane_b.id)


def test_reorder_lanes_full_and_partial(db, board_abc) -> None:
    a, b, c = db.list_lanes(board_abc.id)
    db.reorder_lanes([(c.id, 0), (a.id, 1), (b.id, 2)])
    assert _names(db, board_abc.id) == ["C", "A", "B"]

    # Partial: only B is mentioned; the rest keep their relative order.
    db.reorder_lanes([(b.id, 0)])
    assert _names(db, board_abc.id) == ["B", "C", "A"]
    assert _positions(db, board_abc.id) == [0, 1, 2]


def test_reorder_lanes_rejects_bad_input(db, seeded, board_abc) -> None:
    a, b, _ = db.list_lanes(board_abc.id)
    with pytest.raises(ValueError):
        db.reorder_lanes([(a.id, 0), (a.id, 1)])
    with pytest.raises(KeyError):
        db.reorder_lanes([("missing", 0)])

    other = db.create_board(seeded.project.id, "Other")
    stray = db.create_lane(other.id, "X")
    with pytest.raises(ValueError):
        db.reorder_lanes([(a.id, 0), (stray.id, 1)])


def test_single_default_board_per_project(db, seeded, board_abc) -> None:
    assert db.get_board(board_abc.id).is_default
    second = db.create_board(seeded.project.id, "Second", is_default=True)
    assert not db.get_board(board_abc.id).is_default
    assert db.get_board(second.id).is_default

    db.update_board(board_abc.id, is_default=True)
    defaults = [b.id for b in db.list_boards(seeded.project.id) if b.is_default]
    assert defaults == [board_abc.id]


def test_board_sprint_must_belong_to_project(db, seeded) -> None:
    other = db.create_project("Other")
    foreign = db.create_sprint(other.id, "Elsewhere")
    with pytest.raises(ValueError):
        db.create_board(seeded.project.id, "Scrum", board_type=BoardType.SCRUM, sprint_id=foreign.id)

    board = db.create_board(
        seeded.project.id, "Scrum", board_type=BoardType.SCRUM, sprint_id=seeded.sprint.id
    )
    assert board.sprint_id == seeded.sprint.id
    assert db.update_board(board.id, sprint_id=None).sprint_id is None


def test_board_create_validates_type_and_project(db, seeded) -> None:
    with pytest.raises(ValueError):
        db.create_board(seeded.project.id, "Bad", board_type="timeline")
    with pytest.raises(KeyError):
        db.create_board("missing", "Nowhere")
    with pytest.raises(ValueError):
        db.create_board(seeded.project.id, "  ")


def test_board_create_replays_client_key(db, seeded) -> None:
    first = db.create_board(seeded.project.id, "Main", client_key="b-1")
    again = db.create_board(seeded.project.id, "Main", client_key="b-1")
    assert again.id == first.id
    assert len(db.list_boards(seeded.project.id)) == 1


def test_board_json_fields_round_trip(db, seeded) -> None:
    board = db.create_board(
        seeded.project.id,
        "Filtered",
        filter_query={"assignee": "me"},
        settings={"swimlanes": "epic"},
    )
    fetched = db.get_board(board.id)
    assert fetched.filter_query == {"assignee": "me"}
    assert fetched.settings == {"swimlanes": "epic"}


def test_delete_board_removes_lanes(db, board_abc) -> None:
    lane_ids = [lane.id for lane in board_abc.lanes]
    db.delete_board(board_abc.id)
    with pytest.raises(KeyError):
        db.get_board(board_abc.id)
    for lane_id in lane_ids:
        with pytest.raises(KeyError):
            db.get_lane(lane_id)


def test_init_schema_is_idempotent(db, seeded) -> None:
    db.init_schema()
    assert [p.id for p in db.list_projects()] == [seeded.project.id]
