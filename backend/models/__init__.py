from models.exam import Exam
from models.exam_session import ExamSession
from models.exam_student import ExamStudent
from models.invigilator_assignment import InvigilatorAssignment
from models.room import Room
from models.seat_assignment import SeatAssignment
from models.seating_group import SeatingGroup
from models.seating_group_member import SeatingGroupMember
from models.session_room_mapping import SessionRoomMapping
from models.student import Student
from models.teacher import Teacher

__all__ = [
	"Exam",
	"ExamSession",
	"ExamStudent",
	"InvigilatorAssignment",
	"Room",
	"SeatAssignment",
	"SeatingGroup",
	"SeatingGroupMember",
	"SessionRoomMapping",
	"Student",
	"Teacher",
]
